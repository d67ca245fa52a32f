import os
import sys

import pytest

from cvprep.config import GlobalConfig
from cvprep.errors import ConfigurationError, ExternalToolFailure
from cvprep.markers import FileMarkerStore
from cvprep.pipeline import ExitStatus, run_pipeline
from cvprep.tools import ShellToolkit
from cvprep.tools.env import require_executables, tool_env


@pytest.fixture
def toolkit(tmp_path, monkeypatch):
    """A toolkit that records the commands instead of running them."""
    tools = ShellToolkit(recipe_dir=tmp_path, python="python3")
    tools.commands = []

    def record(command, stdout=None):
        tools.commands.append(([str(c) for c in command], stdout))

    monkeypatch.setattr(tools, "run", record)
    return tools


def test_download_corpus(toolkit, tmp_path):
    toolkit.download_corpus(
        "commonvoice", tmp_path / "dl", languages=["en"], release="cv-corpus-17.0"
    )
    ((command, _),) = toolkit.commands
    assert command == [
        "lhotse",
        "download",
        "commonvoice",
        "--languages",
        "en",
        "--release",
        "cv-corpus-17.0",
        str((tmp_path / "dl").resolve()),
    ]


def test_prepare_manifests(toolkit, tmp_path):
    toolkit.prepare_manifests(
        "commonvoice",
        tmp_path / "corpus",
        tmp_path / "manifests",
        language="en",
        splits=["train", "dev"],
        num_jobs=4,
    )
    toolkit.prepare_manifests("musan", tmp_path / "musan", tmp_path / "manifests")
    (cv_command, _), (musan_command, _) = toolkit.commands
    assert cv_command[:7] == [
        "lhotse",
        "prepare",
        "commonvoice",
        "--split",
        "train",
        "--split",
        "dev",
    ]
    assert cv_command[7:11] == ["--language", "en", "-j", "4"]
    assert "--language" not in musan_command
    assert musan_command[-1] == str((tmp_path / "manifests").resolve())


@pytest.mark.parametrize(
    ["subset", "perturb_speed", "has_subset_flag", "perturb_flag"],
    [
        ("train", False, False, "false"),
        ("train", True, False, "true"),
        ("validated", False, True, "false"),
    ],
)
def test_compute_fbank_splits(
    toolkit, subset, perturb_speed, has_subset_flag, perturb_flag
):
    toolkit.compute_fbank_splits(
        "en",
        subset=subset,
        num_workers=8,
        batch_duration=200.0,
        num_splits=1000,
        perturb_speed=perturb_speed,
    )
    ((command, _),) = toolkit.commands
    assert command[:2] == ["python3", "local/compute_fbank_commonvoice_splits.py"]
    assert ("--subset" in command) == has_subset_flag

    def option(name):
        return command[command.index(name) + 1]

    assert option("--num-workers") == "8"
    assert option("--num-splits") == "1000"
    assert option("--start") == "0"
    assert option("--language") == "en"
    assert option("--perturb-speed") == perturb_flag
    if has_subset_flag:
        assert option("--subset") == subset


def test_preprocess_manifests(toolkit):
    toolkit.preprocess_manifests("en")
    toolkit.preprocess_manifests("en", dataset="invalidated")
    (train, _), (invalidated, _) = toolkit.commands
    assert train == ["python3", "local/preprocess_commonvoice.py", "--language", "en"]
    assert invalidated[-2:] == ["--dataset", "invalidated"]


def test_arpa_to_fst_captures_stdout(toolkit, tmp_path):
    fst = tmp_path / "lm" / "G_3_gram.fst.txt"
    toolkit.arpa_to_fst(tmp_path / "words.txt", 3, tmp_path / "lm" / "3gram.arpa", fst)
    ((command, stdout),) = toolkit.commands
    assert command[1:3] == ["-m", "kaldilm"]
    assert "--max-order=3" in command
    assert "--disambig-symbol=#0" in command
    assert stdout == fst


def test_compile_graphs_with_custom_lm(toolkit, tmp_path):
    toolkit.compile_hlg(tmp_path / "lang_char", lm="G_3_gram_char")
    toolkit.compile_lg(tmp_path / "lang_bpe_500")
    (hlg, _), (lg, _) = toolkit.commands
    assert hlg[1] == "local/compile_hlg.py"
    assert hlg[-2:] == ["--lm", "G_3_gram_char"]
    assert lg[1] == "local/compile_lg.py"
    assert "--lm" not in lg


def test_segment_words(toolkit, tmp_path):
    toolkit.segment_words("yue", tmp_path / "_text", tmp_path)
    ((command, _),) = toolkit.commands
    assert command[1] == "local/word_segment_yue.py"
    assert command[-2:] == ["--lang", "yue"]


def test_segment_words_unsupported_language(toolkit, tmp_path):
    with pytest.raises(ConfigurationError):
        toolkit.segment_words("zh-TW", tmp_path / "_text", tmp_path)
    assert toolkit.commands == []


def test_run_captures_stdout(tmp_path):
    tools = ShellToolkit(recipe_dir=tmp_path)
    output = tmp_path / "out" / "result.txt"
    tools.run([sys.executable, "-c", "print('hello')"], stdout=output)
    assert output.read_text() == "hello\n"
    assert list(output.parent.iterdir()) == [output]


def test_run_uses_recipe_dir(tmp_path):
    tools = ShellToolkit(recipe_dir=tmp_path)
    tools.run([sys.executable, "-c", "open('marker.txt', 'w').close()"])
    assert (tmp_path / "marker.txt").is_file()


def test_run_failure(tmp_path):
    tools = ShellToolkit(recipe_dir=tmp_path)
    output = tmp_path / "result.txt"
    with pytest.raises(ExternalToolFailure) as exc_info:
        tools.run(
            [sys.executable, "-c", "import sys; print('partial'); sys.exit(3)"],
            stdout=output,
        )
    assert exc_info.value.returncode == 3
    assert not output.exists()
    assert list(tmp_path.iterdir()) == []


def test_run_missing_executable(tmp_path):
    tools = ShellToolkit(recipe_dir=tmp_path)
    with pytest.raises(ExternalToolFailure):
        tools.run(["surely-this-program-does-not-exist-anywhere"])


def test_check_missing_recipe_dir(tmp_path):
    with pytest.raises(ConfigurationError):
        ShellToolkit(recipe_dir=tmp_path / "nonexistent").check()


def test_require_executables():
    with pytest.raises(ConfigurationError) as exc_info:
        require_executables(["surely-this-program-does-not-exist-anywhere"])
    assert "surely-this-program-does-not-exist-anywhere" in str(exc_info.value)


def test_tool_env_puts_recipe_dir_on_pythonpath(tmp_path, monkeypatch):
    monkeypatch.setenv("PYTHONPATH", "/some/where")
    env = tool_env(tmp_path, extra={"OMP_NUM_THREADS": "1"})
    recipe_dir = str(tmp_path.resolve())
    assert env["PYTHONPATH"].split(os.pathsep) == [recipe_dir, "/some/where"]
    assert env["OMP_NUM_THREADS"] == "1"


@pytest.fixture
def no_executable_checks(monkeypatch):
    monkeypatch.setattr("cvprep.tools.shell.require_executables", lambda names: None)


def test_check_requires_data_dir_inside_recipe_dir(tmp_path, no_executable_checks):
    ShellToolkit(recipe_dir=tmp_path, data_dir=tmp_path / "data").check()
    ShellToolkit(recipe_dir=tmp_path).check()
    with pytest.raises(ConfigurationError):
        ShellToolkit(recipe_dir=tmp_path, data_dir=tmp_path / "elsewhere").check()


PREPROCESS_SCRIPT = """
from pathlib import Path

fbank_dir = Path("data/en/fbank")
fbank_dir.mkdir(parents=True, exist_ok=True)
for part in ("train", "dev", "test"):
    (fbank_dir / f"cv-en_cuts_{part}_raw.jsonl.gz").touch()
"""


@pytest.fixture
def recipe_dir(tmp_path):
    recipe_dir = tmp_path / "egs" / "commonvoice" / "ASR"
    (recipe_dir / "local").mkdir(parents=True)
    (recipe_dir / "local" / "preprocess_commonvoice.py").write_text(PREPROCESS_SCRIPT)
    manifests_dir = recipe_dir / "data" / "en" / "manifests"
    manifests_dir.mkdir(parents=True)
    for part in ("train", "dev", "test"):
        for kind in ("supervisions", "recordings"):
            (manifests_dir / f"cv-en_{kind}_{part}.jsonl.gz").touch()
    return recipe_dir


def test_pipeline_runs_recipe_scripts_from_recipe_dir(
    recipe_dir, no_executable_checks
):
    config = GlobalConfig(language="en", recipe_dir=recipe_dir)
    assert config.data_dir == recipe_dir / "data"
    report = run_pipeline(3, 3, config)
    assert report.exit_status == ExitStatus.SUCCESS, report.error
    store = FileMarkerStore(recipe_dir / "data")
    assert store.exists("en/fbank/.preprocess.en.train.done")


def test_pipeline_rejects_data_dir_outside_recipe_dir(
    tmp_path, recipe_dir, no_executable_checks
):
    config = GlobalConfig(
        language="en", recipe_dir=recipe_dir, data_dir=tmp_path / "data"
    )
    report = run_pipeline(3, 3, config)
    assert report.exit_status == ExitStatus.CONFIG_ERROR
    assert not (tmp_path / "data").exists()
