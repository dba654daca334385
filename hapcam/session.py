"""Session identifiers and the in-memory store of pending and ongoing sessions.

A session moves through the store as follows::

    prepare -> pending -> start -> ongoing -> stop/close -> (gone)

The store never touches the worker processes itself, it only keeps track of
them. See :class:`hapcam.camera.FFMPEGCamera` for the transitions.
"""
import logging
from uuid import UUID

logger = logging.getLogger(__name__)


class SessionIdentifier:
    """Opaque identifier of one stream session.

    Wraps the 16 byte session ID sent by the controller. Two identifiers are
    equal if their bytes are equal.
    """

    __slots__ = ("_uuid",)

    def __init__(self, value):
        """
        :param value: The session ID as 16 raw bytes, as a ``UUID`` or in its
            hyphenated hex form.
        :type value: ``bytes``, ``uuid.UUID`` or ``str``
        """
        if isinstance(value, SessionIdentifier):
            value = value._uuid
        elif isinstance(value, (bytes, bytearray)):
            value = UUID(bytes=bytes(value))
        elif isinstance(value, str):
            value = UUID(value)
        elif not isinstance(value, UUID):
            raise TypeError("Unsupported session ID type: %s" % type(value).__name__)
        object.__setattr__(self, "_uuid", value)

    @classmethod
    def from_bytes(cls, raw):
        return cls(UUID(bytes=bytes(raw)))

    @property
    def bytes(self):
        return self._uuid.bytes

    def __setattr__(self, name, value):
        raise AttributeError("SessionIdentifier is immutable")

    def __eq__(self, other):
        if not isinstance(other, SessionIdentifier):
            return NotImplemented
        return self._uuid == other._uuid

    def __hash__(self):
        return hash(self._uuid)

    def __str__(self):
        return str(self._uuid)

    def __repr__(self):
        return "<SessionIdentifier %s>" % self._uuid


class PendingSessionInfo:
    """Transport details of a prepared session, waiting to be started.

    ``video_srtp`` and ``audio_srtp`` hold the SRTP master key followed by the
    master salt.
    """

    def __init__(self, address, video_port=None, video_srtp=None, video_ssrc=None,
                 audio_port=None, audio_srtp=None, audio_ssrc=None):
        self.address = address
        self.video_port = video_port
        self.video_srtp = video_srtp
        self.video_ssrc = video_ssrc
        self.audio_port = audio_port
        self.audio_srtp = audio_srtp
        self.audio_ssrc = audio_ssrc

    def __eq__(self, other):
        if not isinstance(other, PendingSessionInfo):
            return NotImplemented
        return vars(self) == vars(other)

    def __repr__(self):
        return "<PendingSessionInfo address={} video_port={} audio_port={}>".format(
            self.address, self.video_port, self.audio_port
        )


class SessionStore:
    """Pending and ongoing sessions of one camera, keyed by SessionIdentifier."""

    def __init__(self):
        self.pending = {}
        self.ongoing = {}

    def put_pending(self, session_id, info):
        """Store ``info`` as the pending entry, replacing an earlier one.

        :return: The ongoing handle of ``session_id`` that was dropped to keep
            the session in one map only, or ``None``. The caller must stop it.
        """
        if session_id in self.pending:
            logger.debug("[%s] Replacing pending session", session_id)
        evicted = self.ongoing.pop(session_id, None)
        self.pending[session_id] = info
        return evicted

    def take_pending(self, session_id):
        """Remove and return the pending entry, or ``None`` if there is none."""
        return self.pending.pop(session_id, None)

    def get_pending(self, session_id):
        return self.pending.get(session_id)

    def put_ongoing(self, session_id, handle):
        self.pending.pop(session_id, None)
        self.ongoing[session_id] = handle

    def take_ongoing(self, session_id):
        """Remove and return the ongoing entry, or ``None`` if there is none."""
        return self.ongoing.pop(session_id, None)

    def get_ongoing(self, session_id):
        return self.ongoing.get(session_id)

    def take_all_ongoing(self):
        """Remove all ongoing entries and return them as a list of pairs."""
        sessions = list(self.ongoing.items())
        self.ongoing.clear()
        return sessions
