"""Contains the StreamController, one per RTP stream management slot.

When a HAP client (e.g. iOS) wants to start a video stream it does the following:
[0. Read supported RTP configuration]
[0. Read supported video configuration]
[0. Read supported audio configuration]
[0. Read the current streaming status]
1. Sets the SetupEndpoints characteristic to notify the camera about its IP address,
selected security parameters, etc.
2. The camera responds to the above by setting the SetupEndpoints with its IP address,
etc.
3. The client sets the SelectedRTPStreamConfiguration characteristic to notify the
camera of its prefered audio and video configuration and to initiate the start of the
streaming.
4. The camera starts the streaming with the above configuration.
[5. At some point the client can reconfigure or stop the stream similarly to step 3.]

The StreamController translates the TLV values of these characteristics into plain
request dicts for its delegate (see ``hapcam.camera.FFMPEGCamera``) and back.
"""
import logging
import struct

from hapcam import tlv
from hapcam.const import (
    ADDRESS_TYPE_V6,
    REQUEST_RECONFIGURE,
    REQUEST_START,
    REQUEST_STOP,
)
from hapcam.util import byte_bool, to_base64_str
from hapcam.worker import WorkerError

logger = logging.getLogger(__name__)


SETUP_TYPES = {
    'SESSION_ID': b'\x01',
    'STATUS': b'\x02',
    'ADDRESS': b'\x03',
    'VIDEO_SRTP_PARAM': b'\x04',
    'AUDIO_SRTP_PARAM': b'\x05',
    'VIDEO_SSRC': b'\x06',
    'AUDIO_SSRC': b'\x07'
}


SETUP_STATUS = {
    'SUCCESS': b'\x00',
    'BUSY': b'\x01',
    'ERROR': b'\x02'
}


SETUP_IPV = {
    'IPV4': b'\x00',
    'IPV6': b'\x01'
}


SETUP_ADDR_INFO = {
    'ADDRESS_VER': b'\x01',
    'ADDRESS': b'\x02',
    'VIDEO_RTP_PORT': b'\x03',
    'AUDIO_RTP_PORT': b'\x04'
}


SETUP_SRTP_PARAM = {
    'CRYPTO': b'\x01',
    'MASTER_KEY': b'\x02',
    'MASTER_SALT': b'\x03'
}


STREAMING_STATUS = {
    'AVAILABLE': b'\x00',
    'STREAMING': b'\x01',
    'BUSY': b'\x02'
}


RTP_CONFIG_TYPES = {
    'CRYPTO': b'\x02'
}


SRTP_CRYPTO_SUITES = {
    'AES_CM_128_HMAC_SHA1_80': b'\x00',
    'AES_CM_256_HMAC_SHA1_80': b'\x01',
    'NONE': b'\x02'
}


VIDEO_TYPES = {
    'CODEC': b'\x01',
    'CODEC_PARAM': b'\x02',
    'ATTRIBUTES': b'\x03',
    'RTP_PARAM': b'\x04'
}


VIDEO_CODEC_TYPES = {
    'H264': b'\x00'
}


VIDEO_CODEC_PARAM_TYPES = {
    'PROFILE_ID': b'\x01',
    'LEVEL': b'\x02',
    'PACKETIZATION_MODE': b'\x03',
}


VIDEO_CODEC_PARAM_PACKETIZATION_MODE_TYPES = {
    'NON_INTERLEAVED': b'\x00'
}


VIDEO_ATTRIBUTES_TYPES = {
    'IMAGE_WIDTH': b'\x01',
    'IMAGE_HEIGHT': b'\x02',
    'FRAME_RATE': b'\x03'
}


SELECTED_STREAM_CONFIGURATION_TYPES = {
    'SESSION': b'\x01',
    'VIDEO': b'\x02',
    'AUDIO': b'\x03'
}


SESSION_COMMAND_TYPES = {
    'SESSION_ID': b'\x01',
    'COMMAND': b'\x02'
}


SESSION_COMMANDS = {
    0: REQUEST_STOP,
    1: REQUEST_START,
    4: REQUEST_RECONFIGURE,
}


RTP_PARAM_TYPES = {
    'PAYLOAD_TYPE': b'\x01',
    'SYNCHRONIZATION_SOURCE': b'\x02',
    'MAX_BIT_RATE': b'\x03',
    'RTCP_SEND_INTERVAL': b'\x04',
    'MAX_MTU': b'\x05',
}


AUDIO_TYPES = {
    'CODEC': b'\x01',
    'CODEC_PARAM': b'\x02',
}


AUDIO_CODEC_TYPES = {
    'AACELD': b'\x02',
    'OPUS': b'\x03'
}


AUDIO_CODEC_PARAM_TYPES = {
    'CHANNEL': b'\x01',
    'BIT_RATE': b'\x02',
    'SAMPLE_RATE': b'\x03',
}


AUDIO_CODEC_PARAM_BIT_RATE_TYPES = {
    'VARIABLE': b'\x00',
    'CONSTANT': b'\x01'
}


AUDIO_CODEC_PARAM_SAMPLE_RATE_TYPES = {
    8: b'\x00',
    16: b'\x01',
    24: b'\x02'
}


SUPPORTED_VIDEO_CONFIG_TAG = b'\x01'
SUPPORTED_AUDIO_CODECS_TAG = b'\x01'
SUPPORTED_COMFORT_NOISE_TAG = b'\x02'
STREAMING_STATUS_TAG = b'\x01'


def get_supported_rtp_config():
    """Return a tlv representation of the RTP configuration we support.

    Streams are always encrypted with AES_CM_128_HMAC_SHA1_80.
    """
    return tlv.encode(RTP_CONFIG_TYPES['CRYPTO'],
                      SRTP_CRYPTO_SUITES['AES_CM_128_HMAC_SHA1_80'],
                      to_base64=True)


def get_supported_video_stream_config(video_codec, resolutions):
    """Return a tlv representation of the supported video stream configuration.

    :param video_codec: ``dict`` with the H.264 ``profiles`` and ``levels`` indexes.
    :param resolutions: The resolution catalog.
    """
    codec_params_tlv = tlv.encode(
        VIDEO_CODEC_PARAM_TYPES['PACKETIZATION_MODE'],
        VIDEO_CODEC_PARAM_PACKETIZATION_MODE_TYPES['NON_INTERLEAVED'])

    for profile in video_codec['profiles']:
        codec_params_tlv += \
            tlv.encode(VIDEO_CODEC_PARAM_TYPES['PROFILE_ID'], struct.pack('B', profile))

    for level in video_codec['levels']:
        codec_params_tlv += \
            tlv.encode(VIDEO_CODEC_PARAM_TYPES['LEVEL'], struct.pack('B', level))

    attr_tlv = b''
    for width, height, max_fps in resolutions:
        res_tlv = tlv.encode(
            VIDEO_ATTRIBUTES_TYPES['IMAGE_WIDTH'], struct.pack('<H', width),
            VIDEO_ATTRIBUTES_TYPES['IMAGE_HEIGHT'], struct.pack('<H', height),
            VIDEO_ATTRIBUTES_TYPES['FRAME_RATE'], struct.pack('<H', max_fps))
        attr_tlv += tlv.encode(VIDEO_TYPES['ATTRIBUTES'], res_tlv)

    config_tlv = tlv.encode(VIDEO_TYPES['CODEC'], VIDEO_CODEC_TYPES['H264'],
                            VIDEO_TYPES['CODEC_PARAM'], codec_params_tlv)

    return tlv.encode(SUPPORTED_VIDEO_CONFIG_TAG, config_tlv + attr_tlv,
                      to_base64=True)


def get_supported_audio_stream_config(audio_codecs, comfort_noise=False):
    """Return a tlv representation of the supported audio stream configuration.

    iOS supports only AAC-ELD and OPUS. Codecs or sample rates it does not
    support are skipped; OPUS at 24 kHz is advertised when none is left.
    """
    configs = b''
    for codec_param in audio_codecs:
        codec = {'OPUS': AUDIO_CODEC_TYPES['OPUS'],
                 'AAC-eld': AUDIO_CODEC_TYPES['AACELD']}.get(codec_param['type'])
        if codec is None:
            logger.warning('Unsupported codec %s', codec_param['type'])
            continue

        samplerate = AUDIO_CODEC_PARAM_SAMPLE_RATE_TYPES.get(codec_param['samplerate'])
        if samplerate is None:
            logger.warning('Unsupported sample rate %s', codec_param['samplerate'])
            continue

        configs += _audio_codec_tlv(codec, samplerate)

    if not configs:
        logger.warning('No configured audio codec is supported by iOS, using OPUS.')
        configs = _audio_codec_tlv(AUDIO_CODEC_TYPES['OPUS'],
                                   AUDIO_CODEC_PARAM_SAMPLE_RATE_TYPES[24])

    return to_base64_str(
        configs + tlv.encode(SUPPORTED_COMFORT_NOISE_TAG, byte_bool(comfort_noise)))


def _audio_codec_tlv(codec, samplerate):
    param_tlv = tlv.encode(AUDIO_CODEC_PARAM_TYPES['CHANNEL'], b'\x01',
                           AUDIO_CODEC_PARAM_TYPES['BIT_RATE'],
                           AUDIO_CODEC_PARAM_BIT_RATE_TYPES['VARIABLE'],
                           AUDIO_CODEC_PARAM_TYPES['SAMPLE_RATE'], samplerate)
    config_tlv = tlv.encode(AUDIO_TYPES['CODEC'], codec,
                            AUDIO_TYPES['CODEC_PARAM'], param_tlv)
    return tlv.encode(SUPPORTED_AUDIO_CODECS_TAG, config_tlv)


def _unpack_int(fmt, value):
    """Unpack a little endian int whose width may be shorter than ``fmt``."""
    size = struct.calcsize(fmt)
    return struct.unpack(fmt, value[:size].ljust(size, b'\x00'))[0]


def _decode_srtp_leg(objs, tag, port):
    srtp_tlv = objs.get(tag)
    if not srtp_tlv:
        return None
    srtp_objs = tlv.decode(srtp_tlv)
    return {
        'port': port,
        'srtp_key': srtp_objs.get(SETUP_SRTP_PARAM['MASTER_KEY'], b''),
        'srtp_salt': srtp_objs.get(SETUP_SRTP_PARAM['MASTER_SALT'], b''),
    }


def _encode_srtp_leg(leg):
    if not leg:
        return tlv.encode(SETUP_SRTP_PARAM['CRYPTO'], SRTP_CRYPTO_SUITES['NONE'],
                          SETUP_SRTP_PARAM['MASTER_KEY'], b'',
                          SETUP_SRTP_PARAM['MASTER_SALT'], b'')
    return tlv.encode(
        SETUP_SRTP_PARAM['CRYPTO'], SRTP_CRYPTO_SUITES['AES_CM_128_HMAC_SHA1_80'],
        SETUP_SRTP_PARAM['MASTER_KEY'], bytes(leg['srtp_key']),
        SETUP_SRTP_PARAM['MASTER_SALT'], bytes(leg['srtp_salt']))


class StreamController:
    """One RTP stream management slot of a camera.

    :param stream_idx: Index of this slot.
    :param delegate: Handles the decoded requests. Must provide
        ``prepare_stream(request)``, ``handle_stream_request(request)`` (a
        coroutine), ``stop_stream(session_id)`` and
        ``release_session(session_id)``.
    :param config: The ``CameraConfig`` of the camera.
    """

    def __init__(self, stream_idx, delegate, config):
        self.stream_idx = stream_idx
        self.delegate = delegate
        self.status = STREAMING_STATUS['AVAILABLE']
        self.session_id = None
        self.connection_id = None
        self.handle = None

        self.supported_rtp_config = get_supported_rtp_config()
        self.supported_video_stream_config = get_supported_video_stream_config(
            config.video_codec, config.video_resolutions)
        self.supported_audio_stream_config = get_supported_audio_stream_config(
            config.audio_codecs)
        self.setup_endpoints = None

    @property
    def streaming_status(self):
        """The streaming status in TLV format."""
        return tlv.encode(STREAMING_STATUS_TAG, self.status, to_base64=True)

    def set_endpoints(self, value, connection_id=None):
        """Configure streaming endpoints.

        Called when iOS sets the SetupEndpoints ``Characteristic``.

        :param value: The base64-encoded stream session details in TLV format.
        :type value: ``str``

        :param connection_id: Identifies the connection the request came from.
            Used to release the session when that connection closes.

        :return: The base64-encoded response in TLV format, also kept as
            ``self.setup_endpoints``. A slot that is streaming answers
            with status BUSY and keeps its session.
        :rtype: ``str``
        """
        objs = tlv.decode(value, from_base64=True)
        session_id = objs.get(SETUP_TYPES['SESSION_ID'])
        if not session_id:
            logger.error('Bad request to set up endpoints: no session ID.')
            return None

        if self.status != STREAMING_STATUS['AVAILABLE']:
            logger.warning('Stream %d is busy, rejecting endpoint setup.', self.stream_idx)
            return tlv.encode(SETUP_TYPES['SESSION_ID'], session_id,
                              SETUP_TYPES['STATUS'], SETUP_STATUS['BUSY'],
                              to_base64=True)

        address_info_objs = tlv.decode(objs.get(SETUP_TYPES['ADDRESS'], b''))
        address = address_info_objs.get(SETUP_ADDR_INFO['ADDRESS'], b'').decode('utf8')
        video_port = _unpack_int(
            '<H', address_info_objs.get(SETUP_ADDR_INFO['VIDEO_RTP_PORT'], b''))
        audio_port = _unpack_int(
            '<H', address_info_objs.get(SETUP_ADDR_INFO['AUDIO_RTP_PORT'], b''))

        request = {
            'sessionID': session_id,
            'targetAddress': address,
        }
        video = _decode_srtp_leg(objs, SETUP_TYPES['VIDEO_SRTP_PARAM'], video_port)
        if video:
            request['video'] = video
        audio = _decode_srtp_leg(objs, SETUP_TYPES['AUDIO_SRTP_PARAM'], audio_port)
        if audio:
            request['audio'] = audio

        logger.debug(
            'Received endpoint configuration on stream %d:'
            '\naddress: %s\ntarget_video_port: %s\ntarget_audio_port: %s',
            self.stream_idx, address, video_port, audio_port,
        )

        if self.session_id is not None and self.session_id != session_id:
            self.delegate.release_session(self.session_id)
        response = self.delegate.prepare_stream(request)

        self.session_id = session_id
        self.connection_id = connection_id

        self.setup_endpoints = self._encode_setup_response(session_id, response)
        return self.setup_endpoints

    @staticmethod
    def _encode_setup_response(session_id, response):
        address = response['address']
        video = response.get('video')
        audio = response.get('audio')

        res_address_tlv = tlv.encode(
            SETUP_ADDR_INFO['ADDRESS_VER'],
            SETUP_IPV['IPV6'] if address['type'] == ADDRESS_TYPE_V6 else SETUP_IPV['IPV4'],
            SETUP_ADDR_INFO['ADDRESS'], address['address'].encode('utf-8'),
            SETUP_ADDR_INFO['VIDEO_RTP_PORT'], struct.pack('<H', video['port'] if video else 0),
            SETUP_ADDR_INFO['AUDIO_RTP_PORT'], struct.pack('<H', audio['port'] if audio else 0))

        return tlv.encode(
            SETUP_TYPES['SESSION_ID'], session_id,
            SETUP_TYPES['STATUS'], SETUP_STATUS['SUCCESS'],
            SETUP_TYPES['ADDRESS'], res_address_tlv,
            SETUP_TYPES['VIDEO_SRTP_PARAM'], _encode_srtp_leg(video),
            SETUP_TYPES['AUDIO_SRTP_PARAM'], _encode_srtp_leg(audio),
            SETUP_TYPES['VIDEO_SSRC'], struct.pack('<I', video['ssrc'] if video else 0),
            SETUP_TYPES['AUDIO_SSRC'], struct.pack('<I', audio['ssrc'] if audio else 0),
            to_base64=True)

    @staticmethod
    def _decode_video_request(video_tlv):
        video_objs = tlv.decode(video_tlv)
        video = {}

        video_attrs = video_objs.get(VIDEO_TYPES['ATTRIBUTES'])
        if video_attrs:
            attr_objs = tlv.decode(video_attrs)
            video['width'] = _unpack_int(
                '<H', attr_objs[VIDEO_ATTRIBUTES_TYPES['IMAGE_WIDTH']])
            video['height'] = _unpack_int(
                '<H', attr_objs[VIDEO_ATTRIBUTES_TYPES['IMAGE_HEIGHT']])
            video['fps'] = _unpack_int(
                '<B', attr_objs[VIDEO_ATTRIBUTES_TYPES['FRAME_RATE']])

        rtp_param = video_objs.get(VIDEO_TYPES['RTP_PARAM'])
        if rtp_param:
            rtp_objs = tlv.decode(rtp_param)
            if RTP_PARAM_TYPES['MAX_BIT_RATE'] in rtp_objs:
                video['max_bit_rate'] = _unpack_int(
                    '<H', rtp_objs[RTP_PARAM_TYPES['MAX_BIT_RATE']])
            if RTP_PARAM_TYPES['PAYLOAD_TYPE'] in rtp_objs:
                video['payload_type'] = rtp_objs[RTP_PARAM_TYPES['PAYLOAD_TYPE']][0]
            if RTP_PARAM_TYPES['MAX_MTU'] in rtp_objs:
                video['mtu'] = _unpack_int('<H', rtp_objs[RTP_PARAM_TYPES['MAX_MTU']])

        return video

    async def set_selected_stream_configuration(self, value):
        """Start, stop or reconfigure a stream.

        Called when iOS sets the SelectedRTPStreamConfiguration ``Characteristic``.

        :param value: base64-encoded selected configuration in TLV format
        :type value: ``str``
        """
        logger.debug('set_selected_stream_config - value - %s', value)

        objs = tlv.decode(value, from_base64=True)
        if SELECTED_STREAM_CONFIGURATION_TYPES['SESSION'] not in objs:
            logger.error('Bad request to set selected stream configuration.')
            return

        session = tlv.decode(objs[SELECTED_STREAM_CONFIGURATION_TYPES['SESSION']])
        command = session.get(SESSION_COMMAND_TYPES['COMMAND'])
        request_type = SESSION_COMMANDS.get(command[0]) if command else None
        if request_type is None:
            logger.error('Unknown request type %s', command)
            return

        request = {
            'sessionID': session.get(SESSION_COMMAND_TYPES['SESSION_ID']),
            'type': request_type,
        }
        video_tlv = objs.get(SELECTED_STREAM_CONFIGURATION_TYPES['VIDEO'])
        if video_tlv:
            request['video'] = self._decode_video_request(video_tlv)

        try:
            handle = await self.delegate.handle_stream_request(request)
        except WorkerError:
            logger.exception('Failed to start stream %d', self.stream_idx)
            self.status = STREAMING_STATUS['AVAILABLE']
            return

        if request_type == REQUEST_START and handle is not None:
            self.status = STREAMING_STATUS['STREAMING']
            self.handle = handle
            if handle.watcher is not None:
                handle.watcher.add_done_callback(
                    lambda _: self._stream_exited(handle))
        elif request_type == REQUEST_STOP:
            self._reset()

    def _stream_exited(self, handle):
        """Make the slot available again when its worker exits on its own."""
        if handle is not self.handle:
            return
        logger.info('Stream %d ended.', self.stream_idx)
        self.delegate.stop_stream(self.session_id)
        self._reset()

    def _reset(self):
        self.status = STREAMING_STATUS['AVAILABLE']
        self.session_id = None
        self.connection_id = None
        self.handle = None

    def handle_close_connection(self, connection_id):
        """Release the session of this slot if ``connection_id`` set it up."""
        if self.connection_id is None or connection_id != self.connection_id:
            return
        logger.info(
            'Connection %s closed, releasing stream %d', connection_id, self.stream_idx)
        self.delegate.release_session(self.session_id)
        self._reset()
