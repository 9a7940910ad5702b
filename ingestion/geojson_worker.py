"""
geojson_worker.py - Off-thread GeoJSON time filtering and simplification

Large documents are filtered and simplified on a background thread pool. The
caller posts a task message and gets a Future back; when no worker is
available the very same dispatcher runs in the calling thread and the Future
is returned already resolved, so both paths produce identical output.

Messages:
    {"type": "PROCESS_GEOJSON", "geoJSON": {...}, "timeIndex": 3}
    {"type": "SIMPLIFY_GEOJSON", "geoJSON": {...}, "everyNth": 5}

Responses:
    {"type": "PROCESS_COMPLETE", "processedGeoJSON": {...}}
    {"type": "SIMPLIFY_COMPLETE", "simplifiedGeoJSON": {...}}
    {"type": "ERROR", "error": "..."}

There is no cancellation: a caller that no longer needs a result simply
ignores its Future.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional

from loguru import logger

from .geojson_processor import (
    DEFAULT_EVERY_NTH,
    DEFAULT_MAX_FEATURES,
    DEFAULT_MAX_MULTIPOINT,
    filter_by_time_index,
    simplify_geojson,
)

PROCESS_GEOJSON = "PROCESS_GEOJSON"
SIMPLIFY_GEOJSON = "SIMPLIFY_GEOJSON"
PROCESS_COMPLETE = "PROCESS_COMPLETE"
SIMPLIFY_COMPLETE = "SIMPLIFY_COMPLETE"
ERROR = "ERROR"


class GeoJSONWorkerError(RuntimeError):
    """A task the worker reported as failed."""


def handle_message(message: Dict[str, Any]) -> Dict[str, Any]:
    """Run one task message and build its response. Never raises."""
    try:
        message_type = message.get("type")

        if message_type == PROCESS_GEOJSON:
            processed = filter_by_time_index(message.get("geoJSON"), message.get("timeIndex"))
            return {"type": PROCESS_COMPLETE, "processedGeoJSON": processed}

        if message_type == SIMPLIFY_GEOJSON:
            simplified = simplify_geojson(
                message.get("geoJSON"),
                max_features=message.get("maxFeatures", DEFAULT_MAX_FEATURES),
                every_nth=message.get("everyNth", DEFAULT_EVERY_NTH),
                max_multipoint=message.get("maxMultipoint", DEFAULT_MAX_MULTIPOINT),
            )
            return {"type": SIMPLIFY_COMPLETE, "simplifiedGeoJSON": simplified}

        return {"type": ERROR, "error": "Unknown message type"}
    except Exception as e:
        return {"type": ERROR, "error": str(e) or e.__class__.__name__}


def unwrap_response(response: Dict[str, Any], expected_type: str, result_key: str) -> Any:
    """Result payload of a response, or GeoJSONWorkerError for an ERROR response."""
    if response.get("type") == expected_type:
        return response.get(result_key)
    raise GeoJSONWorkerError(response.get("error") or f"Unexpected worker response: {response.get('type')}")


class GeoJSONWorker:
    """
    Background worker running GeoJSON task messages on a thread pool.

    Example:
        with GeoJSONWorker() as worker:
            response = worker.post_message({"type": "PROCESS_GEOJSON", ...}).result()
    """

    def __init__(self, max_workers: int = 1):
        """Start the worker.

        Args:
            max_workers: Threads serving task messages
        """
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="geojson-worker")
        self.terminated = False
        logger.debug(f"🧵 GeoJSON worker started with {max_workers} thread(s)")

    def post_message(self, message: Dict[str, Any]) -> "Future[Dict[str, Any]]":
        """Queue a task message; the Future resolves to its response."""
        return self._executor.submit(handle_message, message)

    def terminate(self) -> None:
        """Stop accepting tasks and drop queued ones."""
        self.terminated = True
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "GeoJSONWorker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.terminate()


class GeoJSONTaskRunner:
    """
    Posts GeoJSON tasks to a worker, or runs them in-thread when none is available.

    Each call resolves or fails exactly once; a failed task only affects the
    Future of the call that posted it.
    """

    def __init__(self, worker: Optional[GeoJSONWorker] = None, use_worker: bool = True, max_workers: int = 1):
        """Initialize the runner.

        Args:
            worker: Existing worker to post to
            use_worker: If False, always run in the calling thread
            max_workers: Threads for a worker created here
        """
        self.worker: Optional[GeoJSONWorker] = None

        if not use_worker:
            logger.debug("📋 GeoJSON worker disabled, processing in-thread")
            return

        if worker is not None:
            self.worker = worker
            return

        try:
            self.worker = GeoJSONWorker(max_workers=max_workers)
        except (RuntimeError, ValueError) as e:
            logger.error(f"❌ Error initializing GeoJSON worker: {e}")
            logger.info("  💡 Falling back to in-thread processing")

    @property
    def has_worker(self) -> bool:
        return self.worker is not None and not self.worker.terminated

    def process_geojson(self, geojson: Dict[str, Any], time_index: Any = None) -> "Future[Dict[str, Any]]":
        """Filter a document to one time step."""
        message = {"type": PROCESS_GEOJSON, "geoJSON": geojson, "timeIndex": time_index}
        return self._dispatch(message, PROCESS_COMPLETE, "processedGeoJSON")

    def simplify_geojson(
        self,
        geojson: Dict[str, Any],
        every_nth: int = DEFAULT_EVERY_NTH,
        max_features: int = DEFAULT_MAX_FEATURES,
        max_multipoint: int = DEFAULT_MAX_MULTIPOINT,
    ) -> "Future[Dict[str, Any]]":
        """Simplify a document for storage."""
        message = {
            "type": SIMPLIFY_GEOJSON,
            "geoJSON": geojson,
            "everyNth": every_nth,
            "maxFeatures": max_features,
            "maxMultipoint": max_multipoint,
        }
        return self._dispatch(message, SIMPLIFY_COMPLETE, "simplifiedGeoJSON")

    def close(self) -> None:
        if self.worker is not None:
            self.worker.terminate()

    def _dispatch(self, message: Dict[str, Any], expected_type: str, result_key: str) -> "Future[Any]":
        result: "Future[Any]" = Future()

        if self.has_worker:
            try:
                posted = self.worker.post_message(message)
            except RuntimeError as e:
                logger.warning(f"⚠️ GeoJSON worker unavailable ({e}), processing in-thread")
            else:
                posted.add_done_callback(lambda done: self._settle(done, result, expected_type, result_key))
                return result

        self._resolve(result, handle_message(message), expected_type, result_key)
        return result

    @staticmethod
    def _settle(posted: "Future[Dict[str, Any]]", result: "Future[Any]", expected_type: str, result_key: str) -> None:
        if posted.cancelled():
            result.set_exception(GeoJSONWorkerError("Worker terminated before the task ran"))
            return
        GeoJSONTaskRunner._resolve(result, posted.result(), expected_type, result_key)

    @staticmethod
    def _resolve(result: "Future[Any]", response: Dict[str, Any], expected_type: str, result_key: str) -> None:
        try:
            result.set_result(unwrap_response(response, expected_type, result_key))
        except GeoJSONWorkerError as e:
            logger.error(f"❌ GeoJSON task failed: {e}")
            result.set_exception(e)
