#!/usr/bin/env python3
"""
Show what a camera configuration would negotiate.

Usage:
    camera_main.py camera.json [WIDTH HEIGHT FPS BITRATE]

For every camera in camera.json, prints the supported configuration TLVs that are
advertised to HomeKit and the ffmpeg command a start request for
WIDTHxHEIGHT@FPS with a maximum bit rate of BITRATE kbps would run. Nothing is
started. Defaults to a 1280x720@30 request at 300 kbps.
"""
import logging
import sys
import uuid

from hapcam.camera import FFMPEGCamera
from hapcam.loader import load_cameras
from hapcam.session import SessionIdentifier

logging.basicConfig(level=logging.INFO, format="[%(module)s] %(message)s")


def describe(config, width, height, fps, bitrate):
    camera = FFMPEGCamera(config)
    controller = camera.stream_controllers[0]
    print("Camera:", config.name)
    print("  SupportedRTPConfiguration:", controller.supported_rtp_config)
    print("  SupportedVideoStreamConfiguration:", controller.supported_video_stream_config)
    print("  SupportedAudioStreamConfiguration:", controller.supported_audio_stream_config)

    session_id = SessionIdentifier(uuid.uuid4())
    camera.prepare_stream({
        "sessionID": session_id.bytes,
        "targetAddress": "192.168.1.100",
        "video": {"port": 50000, "srtp_key": bytes(16), "srtp_salt": bytes(14)},
    })
    session_info = camera.store.take_pending(session_id)
    params = camera.build_worker_parameters(session_info, {
        "width": width, "height": height, "fps": fps, "max_bit_rate": bitrate,
    })
    print("  Stream command:", " ".join(camera.worker.command(params)))


if __name__ == "__main__":
    if len(sys.argv) not in (2, 6):
        print(__doc__)
        sys.exit(1)
    request = [int(arg) for arg in sys.argv[2:]] or [1280, 720, 30, 300]
    for camera_config in load_cameras(sys.argv[1]):
        describe(camera_config, *request)
