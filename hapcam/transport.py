"""Answer the controller's endpoint setup with our side of the transport."""
import logging

from hapcam import util
from hapcam.const import STREAM_SSRC
from hapcam.session import PendingSessionInfo

logger = logging.getLogger(__name__)


class TransportNegotiator:
    """Builds the prepare response and records the pending session.

    :param store: Where prepared sessions are kept until they are started.
    :type store: ``hapcam.session.SessionStore``

    :param address_provider: Callable returning the local address the camera
        streams from. Called on every prepare.
    """

    def __init__(self, store, address_provider=None):
        self.store = store
        self.address_provider = address_provider or util.get_local_address

    @staticmethod
    def _echo_leg(leg):
        return {
            "port": leg["port"],
            "ssrc": STREAM_SSRC,
            "srtp_key": leg["srtp_key"],
            "srtp_salt": leg["srtp_salt"],
        }

    def prepare(self, session_id, request):
        """Negotiate the transport for ``session_id``.

        :param request: Prepare request with ``targetAddress`` and optional
            ``video`` and ``audio`` legs, each with ``port``, ``srtp_key`` and
            ``srtp_salt``.
        :type request: ``dict``

        :return: The response for the controller and the stored pending info.
        :rtype: ``tuple``
        """
        info = PendingSessionInfo(request.get("targetAddress"))
        response = {}

        video = request.get("video")
        if video:
            response["video"] = self._echo_leg(video)
            info.video_port = video["port"]
            info.video_srtp = bytes(video["srtp_key"]) + bytes(video["srtp_salt"])
            info.video_ssrc = STREAM_SSRC

        audio = request.get("audio")
        if audio:
            response["audio"] = self._echo_leg(audio)
            info.audio_port = audio["port"]
            info.audio_srtp = bytes(audio["srtp_key"]) + bytes(audio["srtp_salt"])
            info.audio_ssrc = STREAM_SSRC

        local_address = self.address_provider()
        response["address"] = {
            "address": local_address,
            "type": util.address_type(local_address),
        }

        logger.debug(
            "[%s] Prepared session: target %s, video port %s, audio port %s, local %s",
            session_id,
            info.address,
            info.video_port,
            info.audio_port,
            local_address,
        )
        self.store.put_pending(session_id, info)
        return response, info
