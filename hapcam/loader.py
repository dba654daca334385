"""
Load camera configurations from a json file.

The file holds either a single camera, or a ``cameras`` list of them. A camera
may keep its streaming options under ``videoConfig``::

    {
        "cameras": [
            {
                "name": "Porch",
                "videoConfig": {
                    "source": "-re -i rtsp://10.0.0.2:554/stream",
                    "snapshotURL": "http://10.0.0.2/snapshot.jpg",
                    "maxStreams": 2,
                    "videoResolutions": [[1280, 720, 30], [320, 240, 15]]
                }
            }
        ]
    }
"""
import json
import logging

from hapcam.config import CameraConfig, ConfigurationError

logger = logging.getLogger(__name__)


def _read_file(path):
    """Read file and return a dict."""
    with open(path, "r", encoding="utf8") as file:
        return json.load(file)


def _camera_options(entry):
    options = dict(entry.get("videoConfig", {}))
    options.update(
        (key, value) for key, value in entry.items() if key != "videoConfig"
    )
    return options


def load_cameras(path):
    """Return a list of ``CameraConfig`` for the cameras in ``path``.

    :raises ConfigurationError: If the file holds no cameras or a camera is
        invalid.
    """
    data = _read_file(path)
    entries = data.get("cameras", [data]) if isinstance(data, dict) else data
    if not entries:
        raise ConfigurationError("No cameras configured in {}".format(path))

    configs = []
    for idx, entry in enumerate(entries):
        try:
            configs.append(CameraConfig.from_options(_camera_options(entry)))
        except ConfigurationError as err:
            raise ConfigurationError(
                "Camera #{} in {}: {}".format(idx, path, err)
            ) from err
    logger.debug("Loaded %d camera(s) from %s", len(configs), path)
    return configs
