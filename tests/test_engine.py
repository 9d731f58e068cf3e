# =============================================================================
# SHAPEPORT ENGINE TESTS
# =============================================================================
# End-to-end orchestration against a mocked Onshape client.
# =============================================================================

import threading
from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest

from conftest import API_BASE, make_response, make_zip, read_zip
from shapeport.core.assembler import ArchiveSink
from shapeport.core.dispatcher import DispatchContext
from shapeport.core.engine import ExportEngine
from shapeport.core.errors import WorkspaceError
from shapeport.core.settings import ExportSettings
from shapeport.domain.models import ExportFormat, ExportResult, JobStatus
from shapeport.infra.onshape_client import OnshapeAPIError

WIDTHS = [{"key": "Width", "keyDisplay": "Width", "values": [50, 60], "unit": "mm"}]


def encode(document_id, element_id, records):
    value = records[0]["parameterValue"].split()[0]
    return {"queryParam": f"configuration=Width%3D{value}", "encodedId": f"enc-{value}"}


def list_parts(document_id, workspace_id, element_id, configuration=None):
    if configuration:
        return [{"partId": "JKD", "name": "Bracket"}]
    return [{"partId": "JHD", "name": "Bracket"}]


@pytest.fixture
def fast_settings():
    return ExportSettings(api_base=API_BASE, poll_interval_seconds=0, max_poll_attempts=3, max_workers=4)


@pytest.fixture
def engine(fast_settings):
    return ExportEngine(settings=fast_settings)


@pytest.fixture
def onshape(mock_client):
    """Client where every export succeeds."""
    mock_client.encode_configuration.side_effect = encode
    mock_client.list_parts.side_effect = list_parts
    mock_client.fetch_mesh.return_value = make_response(
        200, b"solid", {"content-type": "application/octet-stream"}
    )
    mock_client.start_translation.side_effect = lambda d, w, e, body: {
        "id": f"t-{body['formatName']}-{body.get('configuration', 'none')}"
    }
    mock_client.get_translation.return_value = {
        "requestState": "DONE",
        "resultExternalDataIds": ["x1"],
    }
    mock_client.download_external_data.return_value = (b"ISO-10303-21;", "application/step")
    return mock_client


class TestSuccessfulExports:
    """Test requests where every unit succeeds."""

    def test_single_stl(self, engine, onshape, make_request):
        outcome = engine.run(make_request(), onshape)

        assert read_zip(outcome.archive) == {"Frame - Bracket.stl": b"solid"}
        assert outcome.summary() == "succeeded=1; empty=0; failed=0"
        onshape.encode_configuration.assert_not_called()

    def test_every_combination_and_format(self, engine, onshape, make_request):
        request = make_request(formats=["STL", "STEP"], configOptions=WIDTHS)
        outcome = engine.run(request, onshape)

        assert sorted(read_zip(outcome.archive)) == [
            "Frame - Bracket - Width = 50.step",
            "Frame - Bracket - Width = 50.stl",
            "Frame - Bracket - Width = 60.step",
            "Frame - Bracket - Width = 60.stl",
        ]
        assert len(outcome.results) == 4
        assert onshape.encode_configuration.call_count == 2

    def test_translation_uses_resolved_part_and_encoded_id(self, engine, onshape, make_request):
        request = make_request(formats=["STEP"], configOptions=WIDTHS)
        engine.run(request, onshape)

        bodies = [c.args[3] for c in onshape.start_translation.call_args_list]
        assert sorted(b["configuration"] for b in bodies) == ["enc-50", "enc-60"]
        assert all(b["partIds"] == ["JKD"] for b in bodies)

    def test_mesh_url_carries_query_token(self, engine, onshape, make_request):
        engine.run(make_request(configOptions=WIDTHS), onshape)
        urls = sorted(c.args[0] for c in onshape.fetch_mesh.call_args_list)
        assert "configuration=Width%3D50" in urls[0]
        assert "configuration=Width%3D60" in urls[1]

    def test_translated_bundle_extracted(self, engine, onshape, make_request):
        onshape.download_external_data.return_value = (
            make_zip({"Frame - Plate.step": b"plate", "Frame - Bracket.step": b"bracket"}),
            "application/zip",
        )
        outcome = engine.run(make_request(formats=["STEP"]), onshape)
        assert read_zip(outcome.archive) == {"Frame - Bracket.step": b"bracket"}

    def test_combined_mesh_bundle_kept_as_zip(self, engine, onshape, make_request):
        bundle = make_zip({"Bracket.stl": b"a", "Plate.stl": b"b"})
        onshape.fetch_mesh.return_value = make_response(200, bundle, {"content-type": "application/zip"})

        request = make_request(partId=None, partName=None, combineParts=True)
        outcome = engine.run(request, onshape)

        assert read_zip(outcome.archive) == {"Frame - Combined.zip": bundle}
        onshape.list_parts.assert_not_called()

    def test_jobs_recorded(self, engine, onshape, make_request):
        outcome = engine.run(make_request(formats=["STL", "STEP"]), onshape)
        jobs = engine.tracker.list_jobs()
        assert len(jobs) == 2
        assert all(job.status is JobStatus.DONE and job.has_output for job in jobs)
        assert len(read_zip(outcome.archive)) == len(outcome.succeeded)


class TestPartialFailures:
    """Test that failures stay with their own units."""

    def test_encoding_failure_fails_its_combination(self, engine, onshape, make_request):
        def reject_60(document_id, element_id, records):
            if records[0]["parameterValue"] == "60 mm":
                raise OnshapeAPIError("Failed to encode configuration: 400", status_code=400)
            return encode(document_id, element_id, records)

        onshape.encode_configuration.side_effect = reject_60
        request = make_request(formats=["STL", "STEP"], configOptions=WIDTHS)
        outcome = engine.run(request, onshape)

        assert sorted(read_zip(outcome.archive)) == [
            "Frame - Bracket - Width = 50.step",
            "Frame - Bracket - Width = 50.stl",
        ]
        assert len(outcome.failed) == 2
        assert all(r.error_kind == "encoding" for r in outcome.failed)
        assert all(r.unit.config_tag == "Width = 60" for r in outcome.failed)

    def test_resolution_failure_spares_mesh_units(self, engine, onshape, make_request):
        onshape.list_parts.side_effect = lambda d, w, e, cfg=None: []
        request = make_request(formats=["STL", "STEP"], configOptions=WIDTHS[:1])
        outcome = engine.run(request, onshape)

        assert {r.unit.format for r in outcome.succeeded} == {ExportFormat.STL}
        assert {r.unit.format for r in outcome.failed} == {ExportFormat.STEP}
        assert outcome.failed[0].error_kind == "resolution"

    def test_timeout_does_not_block_siblings(self, engine, onshape, make_request):
        onshape.get_translation.return_value = {"requestState": "ACTIVE"}
        outcome = engine.run(make_request(formats=["STL", "STEP"]), onshape)

        assert list(read_zip(outcome.archive)) == ["Frame - Bracket.stl"]
        assert outcome.failed[0].error_kind == "timeout"
        job = engine.tracker.get(outcome.failed[0].unit.job_id)
        assert job.status is JobStatus.FAILED

    def test_failed_translation(self, engine, onshape, make_request):
        onshape.get_translation.return_value = {"requestState": "FAILED", "failureReason": "Bad geometry"}
        outcome = engine.run(make_request(formats=["STEP"]), onshape)
        assert outcome.failed[0].error == "Translation failed (STEP): Bad geometry"
        assert outcome.failed[0].error_kind == "failed"

    def test_zero_result_translation(self, engine, onshape, make_request):
        onshape.get_translation.return_value = {"requestState": "DONE", "resultExternalDataIds": []}
        outcome = engine.run(make_request(formats=["STEP"]), onshape)

        assert read_zip(outcome.archive) == {}
        assert outcome.summary() == "succeeded=0; empty=1; failed=0"
        job = engine.tracker.list_jobs()[0]
        assert job.status is JobStatus.DONE
        assert job.has_output is False

    def test_mesh_redirect_without_location(self, engine, onshape, make_request):
        onshape.fetch_mesh.return_value = make_response(307)
        outcome = engine.run(make_request(), onshape)
        assert outcome.failed[0].error == "No redirect URL for STL"
        assert outcome.failed[0].error_kind == "provider"


class TestWorkspace:
    """Test request-level aborts."""

    def test_workspace_lookup_failure(self, engine, onshape, make_request):
        onshape.get_default_workspace.side_effect = OnshapeAPIError("Failed to get document info: 403", status_code=403)
        with pytest.raises(WorkspaceError) as exc_info:
            engine.run(make_request(), onshape)
        assert exc_info.value.status_code == 403
        onshape.fetch_mesh.assert_not_called()

    def test_missing_workspace(self, engine, onshape, make_request):
        onshape.get_default_workspace.return_value = None
        with pytest.raises(WorkspaceError) as exc_info:
            engine.run(make_request(), onshape)
        assert exc_info.value.status_code == 400
        assert engine.tracker.list_jobs() == []


class TestInflightDeduplication:
    """Test that identical running units execute once."""

    def test_follower_reuses_running_result(self, fast_settings, mock_client, make_unit):
        dispatcher = MagicMock()
        engine = ExportEngine(settings=fast_settings, dispatcher=dispatcher)
        unit = make_unit()
        running = Future()
        running.set_result(
            ExportResult(unit=unit, data=b"solid", entry_name="Frame - Bracket.stl")
        )
        engine._inflight[unit.job_id] = running

        sink = ArchiveSink()
        result = engine._execute(unit, DispatchContext(client=mock_client, workspace_id="w1"), sink)

        dispatcher.dispatch.assert_not_called()
        assert result.data == b"solid"
        assert sink.names == ["Frame - Bracket.stl"]

    def test_owner_clears_inflight_entry(self, fast_settings, mock_client, make_unit):
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = RuntimeError("kaboom")
        engine = ExportEngine(settings=fast_settings, dispatcher=dispatcher)
        unit = make_unit()
        engine.tracker.register(unit)

        result = engine._execute(unit, DispatchContext(client=mock_client, workspace_id="w1"), ArchiveSink())

        assert result.error == "Export failed: kaboom"
        assert engine._inflight == {}
        assert engine.tracker.get(unit.job_id).status is JobStatus.FAILED


def mesh_client(identity, payload, gate):
    """Client whose mesh download returns `payload` once `gate` opens."""
    client = MagicMock()
    client.identity = identity
    client.url.side_effect = lambda path: f"{API_BASE}/{path}"
    client.get_default_workspace.return_value = "w1"
    client.encode_configuration.side_effect = encode
    client.entered = threading.Event()

    def fetch_mesh(url):
        client.entered.set()
        gate.wait(5)
        return make_response(200, payload)

    client.fetch_mesh.side_effect = fetch_mesh
    return client


class TestConcurrentRequests:
    """Test that only identical work is shared between concurrent requests."""

    def _run_overlapping(self, engine, gate, first, first_request, second, second_request):
        """Start `first`, wait until its download is in flight, then run `second`."""
        outcomes = {}
        first_worker = threading.Thread(target=lambda: outcomes.update(first=engine.run(first_request, first)))
        first_worker.start()
        assert first.entered.wait(5)

        second_worker = threading.Thread(target=lambda: outcomes.update(second=engine.run(second_request, second)))
        second_worker.start()
        assert second.entered.wait(5)

        gate.set()
        first_worker.join(5)
        second_worker.join(5)
        return outcomes

    def test_requests_differing_only_in_unit(self, engine, make_request):
        gate = threading.Event()
        mm = mesh_client("caller-a", b"MM-GEOMETRY", gate)
        inch = mesh_client("caller-a", b"INCH-GEOMETRY", gate)
        mm_request = make_request(configOptions=[{"key": "Width", "values": [50], "unit": "mm"}])
        inch_request = make_request(configOptions=[{"key": "Width", "values": [50], "unit": "in"}])

        outcomes = self._run_overlapping(engine, gate, mm, mm_request, inch, inch_request)

        assert inch.fetch_mesh.call_count == 1
        assert read_zip(outcomes["second"].archive) == {"Frame - Bracket - Width = 50.stl": b"INCH-GEOMETRY"}
        assert read_zip(outcomes["first"].archive) == {"Frame - Bracket - Width = 50.stl": b"MM-GEOMETRY"}

    def test_same_request_from_different_callers(self, engine, make_request):
        gate = threading.Event()
        alice = mesh_client("caller-a", b"ALICE", gate)
        bob = mesh_client("caller-b", b"BOB", gate)

        outcomes = self._run_overlapping(engine, gate, alice, make_request(), bob, make_request())

        assert bob.fetch_mesh.call_count == 1
        assert read_zip(outcomes["second"].archive) == {"Frame - Bracket.stl": b"BOB"}


class TestProviderConcurrency:
    """Test that polling translations do not hold up other units."""

    def test_mesh_unit_runs_while_translations_poll(self, onshape, make_request):
        settings = ExportSettings(
            api_base=API_BASE, poll_interval_seconds=0.01, max_poll_attempts=500, max_workers=1
        )
        engine = ExportEngine(settings=settings)
        mesh_started = threading.Event()

        def fetch_mesh(url):
            mesh_started.set()
            return make_response(200, b"solid")

        def get_translation(translation_id):
            if mesh_started.is_set():
                return {"requestState": "DONE", "resultExternalDataIds": ["x1"]}
            return {"requestState": "ACTIVE"}

        onshape.fetch_mesh.side_effect = fetch_mesh
        onshape.get_translation.side_effect = get_translation

        outcome = engine.run(make_request(formats=["STEP", "IGES", "STL"]), onshape)

        assert outcome.failed == []
        assert len(outcome.succeeded) == 3


class TestUnexpectedPreparationErrors:
    """Test that stray errors during preparation stay with their combination."""

    def test_unexpected_encoding_error(self, engine, onshape, make_request):
        def flaky(document_id, element_id, records):
            if records[0]["parameterValue"] == "60 mm":
                raise ValueError("Expecting value: line 1 column 1")
            return encode(document_id, element_id, records)

        onshape.encode_configuration.side_effect = flaky
        outcome = engine.run(make_request(configOptions=WIDTHS), onshape)

        assert list(read_zip(outcome.archive)) == ["Frame - Bracket - Width = 50.stl"]
        assert outcome.failed[0].error_kind == "encoding"
