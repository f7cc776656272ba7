"""
Archive worker entry points.

Two ways to drive the QueueConsumer:
- lambda_handler: SQS event source mapping with ReportBatchItemFailures
- run_worker: long-running pull loop for Redis Streams or a polled SQS queue

Neither retries failed messages itself; failed records are left to the
queue's own redelivery (visibility timeout / pending entries list).
"""
from typing import Any, Dict
import asyncio
import signal
import structlog
from .adapters import create_queue_adapter
from .adapters.base import QueueAdapter
from .config import get_settings
from .errors import QueueTransportError
from .event_models import ConsumeResult, QueueRecord
from .logging import setup_logging
from .middleware.correlation import bind_correlation_id
from .services import get_consumer
from .services.consumer import QueueConsumer

settings = get_settings()
setup_logging(json_output=settings.LOG_JSON, service_name="telemetry-archiver")
log = structlog.get_logger()

IDLE_SLEEP_SECONDS = 1.0
TRANSPORT_ERROR_SLEEP_SECONDS = 5.0


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """SQS-triggered handler returning a partial batch response."""
    records = [QueueRecord.from_sqs_event_record(r) for r in (event or {}).get("Records") or []]

    bind_correlation_id(getattr(context, "aws_request_id", None), batch_size=len(records))

    result = asyncio.run(get_consumer().process(records))
    return result.to_lambda_response()


async def poll_once(queue: QueueAdapter, consumer: QueueConsumer, max_messages: int) -> ConsumeResult | None:
    """
    Receive one batch, archive it and acknowledge the records that succeeded.

    Returns:
        The consume result, or None when the queue was empty
    """
    records = await queue.receive(max_messages)
    if not records:
        return None

    bind_correlation_id(batch_size=len(records))
    result = await consumer.process(records)
    failed = set(result.batch_item_failures)
    await queue.acknowledge([r for r in records if r.message_id not in failed])
    return result


async def run_worker(
    queue: QueueAdapter | None = None,
    consumer: QueueConsumer | None = None,
    stop: asyncio.Event | None = None,
) -> None:
    """Poll until `stop` is set."""
    if queue is None:
        queue = create_queue_adapter(settings)
    if queue is None:
        raise RuntimeError("analytics queue is not configured")
    if consumer is None:
        consumer = get_consumer()
    if stop is None:
        stop = asyncio.Event()

    log.info("worker.started", adapter=type(queue).__name__)
    while not stop.is_set():
        try:
            result = await poll_once(queue, consumer, settings.WORKER_POLL_MAX_MESSAGES)
        except QueueTransportError as e:
            log.error("worker.queue_unavailable", error=str(e))
            await _sleep_or_stop(stop, TRANSPORT_ERROR_SLEEP_SECONDS)
            continue
        if result is None:
            await _sleep_or_stop(stop, IDLE_SLEEP_SECONDS)
    log.info("worker.stopped")


async def _sleep_or_stop(stop: asyncio.Event, seconds: float) -> None:
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


def main() -> None:
    async def _run():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        await run_worker(stop=stop)

    asyncio.run(_run())


if __name__ == "__main__":
    main()
