"""Pick a supported video resolution for a stream request."""
import logging
from collections import namedtuple

logger = logging.getLogger(__name__)

ResolutionEntry = namedtuple("ResolutionEntry", ["width", "height", "max_fps"])
"""A resolution the camera can produce at or below ``max_fps``."""

NegotiatedResolution = namedtuple(
    "NegotiatedResolution", ["width", "height", "fps", "within_capability"]
)


def to_catalog(resolutions):
    """Return ``resolutions`` as an immutable tuple of ``ResolutionEntry``.

    :param resolutions: Iterable of ``[width, height, max_fps]`` sequences.
    """
    return tuple(ResolutionEntry(*(int(v) for v in res)) for res in resolutions)


def negotiate(catalog, width, height, fps):
    """Select the resolution to stream with for the requested dimensions.

    The catalog is scanned in order. Entries larger than the request in either
    dimension are skipped and mark the result as not within capability. Any
    other entry becomes the best match when it is wider *or* taller than the
    current best, and caps the frame rate at its ``max_fps``.

    When nothing fits, the result is ``(0, 0)`` with the requested frame rate.

    :param catalog: Supported resolutions, in the configured order.
    :type catalog: sequence of ``ResolutionEntry``

    :rtype: ``NegotiatedResolution``
    """
    best_width = 0
    best_height = 0
    best_fps = fps
    within_capability = True

    for entry in catalog:
        res_width, res_height, max_fps = entry
        if res_width > width or res_height > height:
            logger.debug("Possible resolution [Too Large]: %s", entry)
            within_capability = False
            continue

        if res_width > best_width or res_height > best_height:
            best_width = res_width
            best_height = res_height
            best_fps = min(max_fps, fps)
            logger.debug("Possible resolution [Match]: %s", entry)

    if best_width == 0 and best_height == 0:
        logger.warning(
            "No supported resolution fits the request %sx%s@%s", width, height, fps
        )

    result = NegotiatedResolution(best_width, best_height, best_fps, within_capability)
    logger.debug("Negotiated resolution: %s", result)
    return result
