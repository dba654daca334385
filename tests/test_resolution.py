"""Tests for hapcam.resolution."""
import pytest

from hapcam.resolution import NegotiatedResolution, ResolutionEntry, negotiate, to_catalog

CATALOG = to_catalog(
    [
        [320, 240, 15],
        [1024, 768, 30],
        [640, 480, 30],
        [640, 360, 30],
        [480, 360, 30],
        [480, 270, 30],
        [320, 240, 30],
        [320, 180, 30],
    ]
)


def test_to_catalog():
    """Test the catalog is an immutable tuple of entries."""
    catalog = to_catalog([[1920, 1080, 30], ("1280", "720", "25")])
    assert catalog == (ResolutionEntry(1920, 1080, 30), ResolutionEntry(1280, 720, 25))
    assert isinstance(catalog, tuple)


@pytest.mark.parametrize(
    "entry, fps",
    [
        (ResolutionEntry(1280, 720, 30), 30),
        (ResolutionEntry(1280, 720, 30), 24),
        (ResolutionEntry(1280, 720, 15), 30),
        (ResolutionEntry(320, 240, 30), 60),
    ],
)
def test_exact_match(entry, fps):
    """Test an exact match is chosen and caps the frame rate."""
    catalog = (ResolutionEntry(1920, 1080, 30), entry, ResolutionEntry(160, 120, 30))
    result = negotiate(catalog, entry.width, entry.height, fps)
    assert (result.width, result.height) == (entry.width, entry.height)
    assert result.fps == min(entry.max_fps, fps)


def test_largest_fitting_entry():
    """Test the largest entry that fits the request wins."""
    catalog = to_catalog([[1280, 720, 30], [320, 240, 30]])
    assert negotiate(catalog, 1280, 720, 25) == NegotiatedResolution(1280, 720, 25, True)


def test_scan_continues_after_too_large_entry():
    """Test entries after a too large one are still considered."""
    result = negotiate(CATALOG, 640, 360, 30)
    assert result == NegotiatedResolution(640, 360, 30, False)


def test_frame_rate_comes_from_the_chosen_entry():
    """Test the cap of an earlier, smaller match does not stick."""
    result = negotiate(CATALOG, 1024, 768, 30)
    assert result == NegotiatedResolution(1024, 768, 30, True)


def test_request_exceeding_nothing_is_within_capability():
    """Test a request larger than every entry is within capability."""
    result = negotiate(CATALOG, 3840, 2160, 60)
    assert result.within_capability is True
    assert (result.width, result.height) == (1024, 768)


def test_request_smaller_than_every_entry():
    """Test nothing fitting yields 0x0 at the requested frame rate."""
    catalog = to_catalog([[1920, 1080, 30], [1280, 720, 30]])
    result = negotiate(catalog, 320, 240, 15)
    assert result == NegotiatedResolution(0, 0, 15, False)


def test_empty_catalog():
    assert negotiate((), 1280, 720, 30) == NegotiatedResolution(0, 0, 30, True)


def test_taller_but_narrower_entry_replaces_best():
    """Test either dimension growing is enough to replace the best entry."""
    catalog = to_catalog([[640, 360, 30], [480, 480, 24]])
    result = negotiate(catalog, 640, 480, 30)
    assert result == NegotiatedResolution(480, 480, 24, True)


def test_catalog_is_not_mutated():
    catalog = [ResolutionEntry(640, 480, 30), ResolutionEntry(320, 240, 15)]
    before = list(catalog)
    negotiate(catalog, 320, 240, 30)
    assert catalog == before
