"""Contains the ffmpeg backed camera and its stream session lifecycle.

A session identified by the controller's session ID goes through:

1. ``prepare_stream`` - the transport is negotiated and the session is pending.
2. ``handle_stream_request`` with type "start" - a resolution is negotiated,
   ffmpeg is started and the session is ongoing.
3. ``handle_stream_request`` with type "stop" - ffmpeg is killed and the session
   is forgotten.

Requests for the same session are expected one at a time.
"""
import logging

from hapcam.config import CameraConfig
from hapcam.const import REQUEST_START, REQUEST_STOP
from hapcam.resolution import negotiate
from hapcam.session import SessionIdentifier, SessionStore
from hapcam.snapshot import fetch_snapshot
from hapcam.stream_controller import StreamController
from hapcam.transport import TransportNegotiator
from hapcam.util import to_base64_str
from hapcam.worker import FFmpegWorker, WorkerParameters

logger = logging.getLogger(__name__)


class FFMPEGCamera:
    """A camera that streams its ``source`` through ffmpeg, one process per session.

    :param config: The camera configuration, or an options ``dict`` for
        ``CameraConfig.from_options``.
    :type config: ``CameraConfig`` or ``dict``

    :param worker: Starts and kills the streaming processes. Defaults to an
        ``FFmpegWorker`` for the configured ffmpeg path.

    :param store: Holds the pending and ongoing sessions.
    :type store: ``SessionStore``

    :raises ConfigurationError: If the configuration has no ``source``.
    """

    def __init__(self, config, worker=None, store=None):
        if not isinstance(config, CameraConfig):
            config = CameraConfig.from_options(config)
        logger.debug("FFMPEG: %s", config)

        self.config = config
        self.video_resolutions = config.video_resolutions
        self.worker = worker or FFmpegWorker(config.ffmpeg_path)
        self.store = store or SessionStore()
        self.transport = TransportNegotiator(self.store, lambda: self.config.address)
        self.stream_controllers = [
            StreamController(stream_idx, self, config)
            for stream_idx in range(config.max_streams)
        ]

    def handle_close_connection(self, connection_id):
        """Let every stream controller release what belongs to ``connection_id``."""
        logger.debug("Connection %s closed", connection_id)
        for controller in self.stream_controllers:
            controller.handle_close_connection(connection_id)

    async def handle_snapshot_request(self, request):
        """Return a snapshot from the configured snapshot URL.

        :param request: ``dict`` describing the requested image size. Contains the
            keys "image-width" and "image-height"; the image is returned as is.

        :rtype: ``bytes``
        """
        logger.debug("Snapshot request: %s", request)
        return await fetch_snapshot(self.config.snapshot_url, self.config.snapshot_timeout)

    def prepare_stream(self, request):
        """Negotiate the transport for a new session and keep it pending.

        A stream still running for the same session is stopped first.

        :param request: ``dict`` with ``sessionID``, ``targetAddress`` and
            optional ``video`` and ``audio`` legs.

        :return: The response with the echoed legs and our ``address``.
        :rtype: ``dict``
        """
        session_id = SessionIdentifier(request["sessionID"])
        logger.debug("[%s] Prepare stream request: %s", session_id, request)
        self.stop_stream(session_id)
        response, _ = self.transport.prepare(session_id, request)
        return response

    async def handle_stream_request(self, request):
        """Start or stop the stream of the session in ``request``.

        :param request: ``dict`` with ``sessionID``, ``type`` and, to start, a
            ``video`` dict with ``width``, ``height``, ``fps`` and ``max_bit_rate``.

        :return: The worker handle if a stream was started, ``None`` otherwise.
        """
        raw_session_id = request.get("sessionID")
        if not raw_session_id:
            logger.debug("Ignoring stream request without session: %s", request)
            return None

        session_id = SessionIdentifier(raw_session_id)
        request_type = request.get("type")
        if request_type == REQUEST_START:
            return await self.start_stream(session_id, request.get("video") or {})
        if request_type == REQUEST_STOP:
            self.stop_stream(session_id)
            return None

        logger.warning("[%s] Unsupported stream request type: %s", session_id, request_type)
        return None

    def build_worker_parameters(self, session_info, video):
        """Negotiate the resolution for ``video`` and resolve the worker parameters."""
        resolution = negotiate(
            self.video_resolutions, video["width"], video["height"], video["fps"]
        )
        return WorkerParameters(
            source=self.config.source,
            width=resolution.width,
            height=resolution.height,
            fps=resolution.fps,
            bitrate=video["max_bit_rate"],
            srtp_key=to_base64_str(session_info.video_srtp or b""),
            address=session_info.address,
            port=session_info.video_port,
        )

    async def start_stream(self, session_id, video):
        """Start streaming a prepared session.

        The pending entry is consumed even if nothing is started. A session that
        was never prepared, or was already started, is ignored.

        :raises hapcam.worker.WorkerError: If ffmpeg could not be started.
        """
        session_id = SessionIdentifier(session_id)
        session_info = self.store.take_pending(session_id)
        if session_info is None:
            logger.debug("[%s] No pending session to start", session_id)
            return None

        params = self.build_worker_parameters(session_info, video)
        handle = await self.worker.start(params, session_id=session_id)
        self.store.put_ongoing(session_id, handle)
        return handle

    def stop_stream(self, session_id):
        """Kill the stream of ``session_id``, if there is one."""
        session_id = SessionIdentifier(session_id)
        handle = self.store.take_ongoing(session_id)
        if handle is None:
            logger.debug("[%s] No ongoing session to stop", session_id)
            return
        logger.info("[%s] Stopping stream.", session_id)
        self.worker.terminate(handle)

    def release_session(self, session_id):
        """Forget the pending entry of ``session_id`` and stop its stream."""
        session_id = SessionIdentifier(session_id)
        if self.store.take_pending(session_id) is not None:
            logger.debug("[%s] Dropped pending session", session_id)
        self.stop_stream(session_id)

    async def stop(self):
        """Stop all streaming sessions."""
        for session_id, handle in self.store.take_all_ongoing():
            logger.info("[%s] Stopping stream.", session_id)
            self.worker.terminate(handle)
