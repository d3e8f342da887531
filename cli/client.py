from __future__ import annotations

from typing import Any, Dict, List, NoReturn, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the GLOF Watch service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def send_reading(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/sensor/data", json=payload)

    def get_assessment(self, node_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/assessments/{node_id}")

    def get_insights(self, node_id: str, window_size: Optional[int] = None) -> Dict[str, Any]:
        params = {"window_size": window_size} if window_size is not None else None
        return self._request("GET", f"/ml/insights/{node_id}", params=params)

    def list_alerts(self, risk_tier: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": limit}
        if risk_tier:
            params["risk_tier"] = risk_tier
        return self._request("GET", "/alerts", params=params)

    def get_thresholds(self) -> Dict[str, Any]:
        return self._request("GET", "/settings/thresholds")

    def update_thresholds(self, changes: Dict[str, float]) -> Dict[str, Any]:
        return self._request("PUT", "/settings/thresholds", json=changes)

    def reset(self) -> Dict[str, Any]:
        return self._request("POST", "/sensor/reset")

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
