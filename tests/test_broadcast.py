from __future__ import annotations

import asyncio
import threading

from services.broadcast import NEW_ALERT, SENSOR_UPDATE, Broadcaster


def test_every_subscriber_receives_published_event() -> None:
    broadcaster = Broadcaster()

    async def scenario() -> list[dict]:
        first_id, first = broadcaster.subscribe()
        second_id, second = broadcaster.subscribe()
        delivered = broadcaster.publish(SENSOR_UPDATE, {"node_id": "node-a"})
        messages = [await first.get(), await second.get()]
        broadcaster.unsubscribe(first_id)
        broadcaster.unsubscribe(second_id)
        assert delivered == 2
        return messages

    messages = asyncio.run(scenario())

    assert [message["event"] for message in messages] == [SENSOR_UPDATE, SENSOR_UPDATE]
    assert messages[0]["data"] == {"node_id": "node-a"}
    assert "sent_at" in messages[0]
    assert broadcaster.subscriber_count == 0


def test_publish_from_worker_thread_reaches_loop() -> None:
    broadcaster = Broadcaster()

    async def scenario() -> dict:
        subscriber_id, queue = broadcaster.subscribe()
        worker = threading.Thread(target=broadcaster.publish, args=(NEW_ALERT, {"alert_id": "a-1"}))
        worker.start()
        try:
            return await asyncio.wait_for(queue.get(), timeout=2)
        finally:
            worker.join()
            broadcaster.unsubscribe(subscriber_id)

    message = asyncio.run(scenario())

    assert message["event"] == NEW_ALERT


def test_full_queue_drops_events_for_that_subscriber_only() -> None:
    broadcaster = Broadcaster(queue_size=1)

    async def scenario() -> tuple[int, int, int]:
        slow_id, slow = broadcaster.subscribe()
        broadcaster.publish(SENSOR_UPDATE, {"n": 1})
        broadcaster.publish(SENSOR_UPDATE, {"n": 2})
        await asyncio.sleep(0)
        dropped = broadcaster._subscribers[slow_id].dropped
        return slow.qsize(), dropped, (await slow.get())["data"]["n"]

    size, dropped, kept = asyncio.run(scenario())

    assert size == 1
    assert dropped == 1
    assert kept == 1


def test_subscriber_with_closed_loop_is_removed() -> None:
    broadcaster = Broadcaster()
    loop = asyncio.new_event_loop()
    broadcaster.subscribe(loop=loop)
    loop.close()

    delivered = broadcaster.publish(SENSOR_UPDATE, {})

    assert delivered == 0
    assert broadcaster.subscriber_count == 0
