from pathlib import Path

import pytest

pytest.importorskip("numpy")

from negative_inverter import DecoderUnavailable, ProcessingCapabilities  # noqa: E402


class _StubTiffFile:
    def __init__(self, *, provide_writer=True):
        if provide_writer:
            self.imwrite = object()


class _StubRawpy:
    def __init__(self, *, provide_reader=True):
        if provide_reader:
            self.imread = object()


def test_capabilities_without_tifffile_dependency():
    capabilities = ProcessingCapabilities(tifffile_module=None)

    assert capabilities.bit_depth == 8


def test_capabilities_with_tiff_writer():
    capabilities = ProcessingCapabilities(tifffile_module=_StubTiffFile())

    assert capabilities.bit_depth == 16


def test_capabilities_detect_writer_absence():
    capabilities = ProcessingCapabilities(
        tifffile_module=_StubTiffFile(provide_writer=False)
    )

    assert capabilities.bit_depth == 8


def test_raw_sources_need_rawpy():
    capabilities = ProcessingCapabilities(rawpy_module=None)

    assert capabilities.raw_capable is False
    with pytest.raises(DecoderUnavailable):
        capabilities.assert_can_decode(Path("roll/frame01.NEF"))

    # Raster sources never need the RAW decoder.
    capabilities.assert_can_decode(Path("roll/frame01.tif"))


def test_raw_sources_accepted_with_reader():
    capabilities = ProcessingCapabilities(rawpy_module=_StubRawpy())

    assert capabilities.raw_capable is True
    capabilities.assert_can_decode(Path("roll/frame01.dng"))


def test_raw_reader_absence_detected():
    capabilities = ProcessingCapabilities(rawpy_module=_StubRawpy(provide_reader=False))

    assert capabilities.raw_capable is False
