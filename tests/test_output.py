"""Tests for the output sinks: zip file, extraction directory, byte stream."""

import io
import zipfile

from audio_edition.output import extract_to_directory, write_to_file, write_to_stream

MEMBER = "Issue_9123_20181215_The_Economist_Full_edition.mp3"


class TestWriteToFile:

    async def test_writes_zip(self, catalog, tmp_path):
        artifact = await catalog.resolve_download("2018-12-15")
        path = await write_to_file(artifact, tmp_path / "nested" / "issue.zip")
        assert path == tmp_path / "nested" / "issue.zip"
        with zipfile.ZipFile(path) as archive:
            assert archive.namelist() == [MEMBER]
        assert artifact.consumed


class TestExtract:

    async def test_extract_flat(self, catalog, tmp_path):
        artifact = await catalog.resolve_download("2018-12-15")
        target = await extract_to_directory(artifact, tmp_path / "audio")
        assert target == tmp_path / "audio"
        assert (target / MEMBER).is_file()

    async def test_extract_into_dated_subdir(self, catalog, tmp_path):
        artifact = await catalog.resolve_download("2018-12-15")
        target = await extract_to_directory(artifact, tmp_path, subdir=True)
        assert target == tmp_path / "2018-12-15"
        assert (target / MEMBER).read_bytes().startswith(b"ID3")


class TestWriteToStream:

    async def test_stream(self, catalog):
        artifact = await catalog.resolve_download("2018-12-15", "Introduction")
        buf = io.BytesIO()
        written = await write_to_stream(artifact, buf)
        assert written == len(buf.getvalue())
        with zipfile.ZipFile(io.BytesIO(buf.getvalue())) as archive:
            assert archive.namelist()[0].endswith("_01_Introduction.mp3")
