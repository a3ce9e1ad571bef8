import json
import re
from pathlib import Path

from typer.testing import CliRunner

from mealscan.cli import app
from mealscan.config import Settings
from mealscan.errors import InferenceFailure
from mealscan.orchestrator import AnalysisOrchestrator


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*[mK]", "", text)


def _raw(*names: str, summary: str = "") -> str:
    items = [
        {
            "name": name,
            "weightGrams": 150,
            "macros": {"calories": 120, "protein": 3, "fat": 4, "carbs": 18},
            "confidence": 0.9,
        }
        for name in names
    ]
    total = {"calories": 120 * len(names), "protein": 3 * len(names), "fat": 4 * len(names), "carbs": 18 * len(names)}
    return json.dumps({"items": items, "total": total, "summary": summary})


class FakeInference:
    def __init__(self, responses: list[object], transcripts: list[object] | None = None) -> None:
        self.responses = list(responses)
        self.transcripts = list(transcripts or [])
        self.instructions: list[str] = []

    async def infer(self, tier, task, output_schema) -> str:
        self.instructions.append(task.instruction)
        step = self.responses.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    async def transcribe(self, tier, task) -> str:
        step = self.transcripts.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


async def _no_sleep(delay: float) -> None:
    return None


def _install(monkeypatch, client: FakeInference) -> None:
    orchestrator = AnalysisOrchestrator(client, Settings(api_key="test", max_attempts=1), sleep=_no_sleep)
    monkeypatch.setattr("mealscan.cli._build_orchestrator", lambda: orchestrator)


def _image(tmp_path: Path) -> Path:
    image_path = tmp_path / "meal.jpg"
    image_path.write_bytes(b"fake-image")
    return image_path


def test_analyze_noninteractive_success(monkeypatch, tmp_path: Path) -> None:
    _install(monkeypatch, FakeInference([_raw("Mashed potato", "Bread", summary="Potato with bread")]))

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path)), "--no-interactive"])

    assert result.exit_code == 0
    output = _strip_ansi(result.stdout)
    assert "Detected foods" in output
    assert "Mashed" in output
    assert "Bread" in output
    assert "Total" in output
    assert "Potato with bread" in output
    assert "Gemini 3.0 Pro" in output


def test_analyze_applies_corrections_in_order(monkeypatch, tmp_path: Path) -> None:
    client = FakeInference(
        [
            _raw("Mashed potato", "Bread"),
            _raw("Mashed potato", summary="Removed the bread"),
        ]
    )
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["analyze", str(_image(tmp_path)), "--correction", "remove the bread", "--json"],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    names = [item["name"] for item in payload["result"]["items"]]
    assert names == ["Mashed potato"]
    assert payload["result"]["summary"] == "Removed the bread"
    assert "error" not in payload


def test_failed_correction_keeps_result(monkeypatch, tmp_path: Path) -> None:
    client = FakeInference(
        [
            _raw("Mashed potato", "Bread"),
            InferenceFailure("internal error", status_code=500),
        ]
    )
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["analyze", str(_image(tmp_path)), "-c", "double the bread", "--json"],
    )

    assert result.exit_code == 2
    payload = json.loads(result.stdout)
    assert [item["name"] for item in payload["result"]["items"]] == ["Mashed potato", "Bread"]
    assert payload["error"]["code"] == "UNKNOWN"
    assert payload["pendingCorrection"] == "double the bread"


def test_initial_failure_prints_error_envelope(monkeypatch, tmp_path: Path) -> None:
    _install(monkeypatch, FakeInference([InferenceFailure("bad request", status_code=400)]))

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path)), "--json"])

    assert result.exit_code == 2
    payload = json.loads(result.stdout)
    assert payload["error"]["code"] == "UNKNOWN"
    assert payload["error"]["details"] == "400: bad request"


def test_initial_failure_hides_detail_unless_verbose(monkeypatch, tmp_path: Path) -> None:
    _install(monkeypatch, FakeInference([InferenceFailure("secret-detail", status_code=403)] * 2))

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path)), "--no-interactive"])
    assert result.exit_code == 2
    output = _strip_ansi(result.stdout)
    assert "Access denied" in output
    assert "secret-detail" not in output


def test_voice_populates_pending_correction(monkeypatch, tmp_path: Path) -> None:
    audio_path = tmp_path / "note.ogg"
    audio_path.write_bytes(b"fake-audio")
    _install(monkeypatch, FakeInference([_raw("Soup")], transcripts=["add bread"]))

    runner = CliRunner()
    result = runner.invoke(
        app, ["analyze", str(_image(tmp_path)), "--voice", str(audio_path), "--json"]
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["pendingCorrection"] == "add bread"
    assert [item["name"] for item in payload["result"]["items"]] == ["Soup"]


def test_analyze_rejects_unsupported_image(tmp_path: Path) -> None:
    image_path = tmp_path / "meal.gif"
    image_path.write_bytes(b"gif")

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(image_path), "--no-interactive"])
    assert result.exit_code == 1


def test_describe_json(monkeypatch) -> None:
    _install(monkeypatch, FakeInference([_raw("Egg", "Toast")]))

    runner = CliRunner()
    result = runner.invoke(app, ["describe", "two eggs and toast", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["result"]["modelTier"] == "fast"
    assert payload["result"]["modelLabel"] == "Gemini 2.5 Flash (Text)"


def test_describe_empty_text_needs_no_call(monkeypatch) -> None:
    _install(monkeypatch, FakeInference([]))

    runner = CliRunner()
    result = runner.invoke(app, ["describe", " ", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["result"]["items"] == []


def test_transcribe_prints_text(monkeypatch, tmp_path: Path) -> None:
    audio_path = tmp_path / "note.wav"
    audio_path.write_bytes(b"fake-audio")
    _install(monkeypatch, FakeInference([], transcripts=["  remove the bread  "]))

    runner = CliRunner()
    result = runner.invoke(app, ["transcribe", str(audio_path)])

    assert result.exit_code == 0
    assert result.stdout.strip() == "remove the bread"


def test_interactive_enter_finishes(monkeypatch, tmp_path: Path) -> None:
    client = FakeInference([_raw("Soup")])
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path))], input="\n")

    assert result.exit_code == 0
    assert len(client.instructions) == 1


def test_interactive_correction_updates_result(monkeypatch, tmp_path: Path) -> None:
    client = FakeInference([_raw("Soup"), _raw("Soup", "Bread", summary="Soup with bread")])
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path))], input="add bread\n\n")

    assert result.exit_code == 0
    assert "Soup with bread" in _strip_ansi(result.stdout)
    assert '"add bread"' in client.instructions[1]


def test_interactive_failed_correction_does_not_block_exit(monkeypatch, tmp_path: Path) -> None:
    client = FakeInference(
        [
            _raw("Mashed potato"),
            InferenceFailure("internal error", status_code=500),
            _raw("unused"),
            _raw("unused"),
        ]
    )
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path))], input="more bread\n\n")

    assert result.exit_code == 0
    assert len(client.responses) == 2
    output = _strip_ansi(result.stdout)
    assert "Pending:" in output
    assert "more bread" in output


def test_interactive_send_resubmits_failed_correction(monkeypatch, tmp_path: Path) -> None:
    client = FakeInference(
        [
            _raw("Mashed potato"),
            InferenceFailure("internal error", status_code=500),
            _raw("Mashed potato", "Bread", summary="Added bread"),
        ]
    )
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path))], input="more bread\n!send\n\n")

    assert result.exit_code == 0
    assert client.responses == []
    assert '"more bread"' in client.instructions[2]
    assert "Added bread" in _strip_ansi(result.stdout)


def test_interactive_voice_fills_pending_without_recalculating(monkeypatch, tmp_path: Path) -> None:
    audio_path = tmp_path / "note.ogg"
    audio_path.write_bytes(b"fake-audio")
    client = FakeInference([_raw("Soup")], transcripts=["add bread"])
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(
        app, ["analyze", str(_image(tmp_path))], input=f"!voice {audio_path}\n\n"
    )

    assert result.exit_code == 0
    assert len(client.instructions) == 1
    output = _strip_ansi(result.stdout)
    assert "Heard:" in output
    assert "add bread" in output


def test_interactive_voice_then_send(monkeypatch, tmp_path: Path) -> None:
    audio_path = tmp_path / "note.ogg"
    audio_path.write_bytes(b"fake-audio")
    client = FakeInference(
        [_raw("Soup"), _raw("Soup", "Bread", summary="Soup with bread")], transcripts=["add bread"]
    )
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(
        app, ["analyze", str(_image(tmp_path))], input=f"!voice {audio_path}\n!send\n\n"
    )

    assert result.exit_code == 0
    assert '"add bread"' in client.instructions[1]
    assert "Soup with bread" in _strip_ansi(result.stdout)


def test_interactive_send_without_pending_text(monkeypatch, tmp_path: Path) -> None:
    client = FakeInference([_raw("Soup")])
    _install(monkeypatch, client)

    runner = CliRunner()
    result = runner.invoke(app, ["analyze", str(_image(tmp_path))], input="!send\n\n")

    assert result.exit_code == 0
    assert len(client.instructions) == 1
    assert "Nothing to send" in _strip_ansi(result.stdout)
