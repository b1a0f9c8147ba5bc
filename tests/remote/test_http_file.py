"""Tests for RemoteFileHandle against an in-memory HTTP server."""

from datetime import datetime, timezone

import pytest
import requests
from ota_partfetch.common import ByteRangeError, NetworkError, WriteError
from ota_partfetch.remote.http_file import RemoteFileHandle, parse_http_date
from ota_partfetch.remote.retry import RetryPolicy

from conftest import FakeResponse

URL = "https://cdn.example.com/rom/fastboot.zip"
DATA = bytes(range(256)) * 40

NO_WAIT = RetryPolicy(max_attempts=3, base_delay=0.0)


class BytesSink:
    """Collects a streamed range; reset discards previous attempts."""

    def __init__(self):
        self.data = bytearray()
        self.resets = 0

    def reset(self):
        self.data.clear()
        self.resets += 1

    def write(self, chunk):
        self.data.extend(chunk)


@pytest.fixture
def handle(http):
    http.serve(URL, DATA, last_modified=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
    return RemoteFileHandle(URL, retry_policy=NO_WAIT, session=http, chunk_size=1000)


class TestInitialize:
    """Test metadata probing."""

    def test_records_size_and_metadata(self, handle, http):
        """Test HEAD populates size, type and Last-Modified."""
        assert handle.initialize() == len(DATA)

        assert handle.get_size() == len(DATA)
        assert handle.get_content_type() == "application/zip"
        assert handle.get_last_modified() == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert handle.accepts_ranges is True
        assert http.count("HEAD") == 1

    def test_size_before_initialize_raises(self, handle):
        """Test the handle is unusable until probed."""
        with pytest.raises(ByteRangeError):
            handle.get_size()
        with pytest.raises(ByteRangeError):
            handle.read(0, 10)

    def test_retries_transient_head_failures(self, handle, http):
        """Test two failed probes followed by success."""
        http.fail_next("HEAD", 503, requests.exceptions.ConnectTimeout("slow"))

        assert handle.initialize() == len(DATA)
        assert http.count("HEAD") == 3

    def test_missing_object_exhausts_retries(self, http):
        """Test a 404 is reported as NetworkError after every attempt."""
        handle = RemoteFileHandle(URL + ".missing", retry_policy=NO_WAIT, session=http)

        with pytest.raises(NetworkError):
            handle.initialize()

        assert http.count("HEAD") == 3

    def test_probe_without_content_length(self, handle, http):
        """Test the one-byte range probe supplies the size."""
        http.head_content_length = False

        assert handle.initialize() == len(DATA)
        assert http.ranges() == ["bytes=0-0"]

    def test_warns_without_accept_ranges(self, handle, http, caplog):
        """Test a warning when the server does not advertise ranges."""
        http.advertise_ranges = False

        with caplog.at_level("WARNING"):
            handle.initialize()

        assert "does not advertise byte-range support" in caplog.text

    def test_is_accessible(self, handle, http):
        """Test accessibility check for present and absent objects."""
        assert handle.is_accessible() is True
        assert RemoteFileHandle(URL + ".gone", session=http).is_accessible() is False


class TestRead:
    """Test single range reads."""

    def test_read_exact_range(self, handle, http):
        """Test one request per read with an inclusive Range header."""
        handle.initialize()

        assert handle.read(10, 19) == DATA[10:20]
        assert http.ranges() == ["bytes=10-19"]

    def test_last_byte(self, handle):
        """Test reading the final byte of the object."""
        handle.initialize()
        assert handle.read(len(DATA) - 1, len(DATA) - 1) == DATA[-1:]

    @pytest.mark.parametrize("start, end", [(-1, 5), (5, 4), (0, len(DATA))])
    def test_invalid_range_makes_no_request(self, handle, http, start, end):
        """Test invalid bounds fail before any network call."""
        handle.initialize()

        with pytest.raises(ByteRangeError):
            handle.read(start, end)

        assert http.count("GET") == 0

    def test_ignored_range_header(self, handle, http):
        """Test HTTP 200 to a range request is a range error, not retried."""
        handle.initialize()
        http.ignore_range = True

        with pytest.raises(ByteRangeError):
            handle.read(0, 9)

        assert http.count("GET") == 1

    def test_retries_server_errors(self, handle, http):
        """Test a 500 and a timeout are retried."""
        handle.initialize()
        http.fail_next("GET", 500, requests.exceptions.ReadTimeout("slow"))

        assert handle.read(100, 199) == DATA[100:200]
        assert http.count("GET") == 3

    def test_short_body_is_retried(self, handle, http):
        """Test a truncated 206 body is treated as transient."""
        handle.initialize()
        short = FakeResponse(206, DATA[:5], {"Content-Range": f"bytes 0-9/{len(DATA)}"})
        http.fail_next("GET", short)

        assert handle.read(0, 9) == DATA[:10]
        assert http.count("GET") == 2


class TestFetchRange:
    """Test streamed range delivery."""

    def test_streams_into_sink(self, handle, http):
        """Test chunks arrive in order with progress callbacks."""
        handle.initialize()
        sink = BytesSink()
        progress = []

        received = handle.fetch_range(0, 4999, sink, lambda cur, tot: progress.append((cur, tot)))

        assert received == 5000
        assert bytes(sink.data) == DATA[:5000]
        assert progress[-1] == (5000, 5000)
        assert http.ranges() == ["bytes=0-4999"]

    def test_retry_resets_sink(self, handle, http):
        """Test a broken stream restarts the whole range."""
        handle.initialize()
        broken = FakeResponse(
            206, DATA[:3000], {"Content-Range": f"bytes 0-2999/{len(DATA)}"}, break_after=1000,
        )
        http.fail_next("GET", broken)
        sink = BytesSink()

        handle.fetch_range(0, 2999, sink)

        assert bytes(sink.data) == DATA[:3000]
        assert sink.resets == 2


def _broken_range(start: int, end: int, break_after: int) -> FakeResponse:
    return FakeResponse(
        206, DATA[start:end + 1], {"Content-Range": f"bytes {start}-{end}/{len(DATA)}"},
        break_after=break_after,
    )


class TestIterRange:
    """Test chunked range iteration."""

    def test_yields_requested_bytes(self, handle, http):
        """Test one request delivers the range in chunks."""
        handle.initialize()

        chunks = list(handle.iter_range(100, 2599))

        assert b"".join(chunks) == DATA[100:2600]
        assert len(chunks) == 3
        assert http.ranges() == ["bytes=100-2599"]

    def test_open_failure_is_retried(self, handle, http):
        """Test a 503 before any data is retried by the policy."""
        handle.initialize()
        http.fail_next("GET", 503)

        assert b"".join(handle.iter_range(0, 999)) == DATA[:1000]
        assert http.count("GET") == 2

    def test_broken_stream_resumes_at_missing_byte(self, handle, http):
        """Test an interrupted body is re-requested from where it stopped."""
        handle.initialize()
        http.fail_next("GET", _broken_range(0, 2999, break_after=1000))

        data = b"".join(handle.iter_range(0, 2999))

        assert data == DATA[:3000]
        assert http.ranges() == ["bytes=0-2999", "bytes=1000-2999"]

    def test_resumes_are_bounded(self, handle, http):
        """Test repeated interruptions end in NetworkError."""
        handle.initialize()
        http.fail_next(
            "GET",
            _broken_range(0, 4999, break_after=500),
            _broken_range(1000, 4999, break_after=500),
            _broken_range(2000, 4999, break_after=500),
        )
        received = bytearray()

        with pytest.raises(NetworkError):
            for chunk in handle.iter_range(0, 4999):
                received.extend(chunk)

        assert bytes(received) == DATA[:3000]
        assert http.count("GET") == 3

    def test_ignored_range_header(self, handle, http):
        """Test a full-body answer is not retried."""
        handle.initialize()
        http.ignore_range = True

        with pytest.raises(ByteRangeError):
            list(handle.iter_range(0, 99))

        assert http.count("GET") == 1

    def test_invalid_bounds(self, handle, http):
        """Test out-of-range bounds fail before any request."""
        handle.initialize()

        with pytest.raises(ByteRangeError):
            list(handle.iter_range(0, len(DATA)))

        assert http.count("GET") == 0


class TestDownload:
    """Test whole-object downloads."""

    def test_download_to_file(self, handle, http, tmp_path):
        """Test the file is written completely with progress."""
        handle.initialize()
        destination = tmp_path / "fastboot.zip"
        progress = []

        written = handle.download(destination, lambda cur, tot: progress.append(cur))

        assert written == len(DATA)
        assert destination.read_bytes() == DATA
        assert progress[-1] == len(DATA)
        assert http.ranges() == [None]

    def test_open_failure_is_retried(self, handle, http, tmp_path):
        """Test opening the download is retried."""
        handle.initialize()
        http.fail_next("GET", 502)

        assert handle.download(tmp_path / "out.zip") == len(DATA)
        assert http.count("GET") == 2

    def test_mid_stream_failure_is_not_retried(self, handle, http, tmp_path):
        """Test a broken body leaves the partial file and raises."""
        handle.initialize()
        http.break_download_after = 2000
        destination = tmp_path / "out.zip"

        with pytest.raises(NetworkError):
            handle.download(destination)

        assert http.count("GET") == 1
        assert destination.stat().st_size == 2000

    def test_unwritable_destination(self, handle, tmp_path):
        """Test an OSError while writing becomes WriteError."""
        handle.initialize()

        with pytest.raises(WriteError):
            handle.download(tmp_path / "missing-dir" / "out.zip")


class TestParseHttpDate:
    """Test Last-Modified parsing."""

    def test_valid_date(self):
        """Test an RFC 7231 date."""
        assert parse_http_date("Fri, 01 Mar 2024 12:00:00 GMT") == datetime(
            2024, 3, 1, 12, 0, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_invalid_date(self, value):
        """Test missing or malformed values yield None."""
        assert parse_http_date(value) is None
