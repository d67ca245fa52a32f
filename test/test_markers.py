import pytest

from cvprep.markers import (
    FileMarkerStore,
    InMemoryMarkerStore,
    make_marker_id,
    unit,
)
from cvprep.serialization import load_yaml


@pytest.mark.parametrize(
    ["kwargs", "expected"],
    [
        (
            dict(
                namespace="en/fbank/cv-en_train_split_1000",
                stage="split",
                language="en",
                variant="train",
            ),
            "en/fbank/cv-en_train_split_1000/.split.en.train.done",
        ),
        (
            dict(
                namespace="en/lang_bpe_500/lm",
                stage="arpa",
                language="en",
                params={"vocab": 500, "order": 4},
            ),
            "en/lang_bpe_500/lm/.arpa.en.order=4.vocab=500.done",
        ),
        (dict(namespace="manifests", stage="musan"), "manifests/.musan.done"),
        (dict(namespace=".", stage="download-musan"), ".download-musan.done"),
        (dict(namespace="x", stage="s", variant="train"), "x/.s.-.train.done"),
    ],
)
def test_make_marker_id(kwargs, expected):
    assert make_marker_id(**kwargs) == expected


def test_make_marker_id_is_deterministic():
    kwargs = dict(namespace="en/fbank", stage="fbank", language="en", variant="train")
    assert make_marker_id(**kwargs) == make_marker_id(**kwargs)


def test_marker_ids_of_distinct_units_do_not_collide():
    ids = {
        make_marker_id("en/fbank", "fbank", "en", "train"),
        make_marker_id("en/fbank", "fbank", "en", "validated"),
        make_marker_id("en/fbank", "fbank", "en"),
        make_marker_id("en/fbank", "fbank", None, "en"),
        make_marker_id("en/fbank", "fbank", "train"),
        make_marker_id("en/fbank", "fbank", "en", params={"vocab": 500}),
        make_marker_id("en/fbank", "fbank", "en", params={"vocab": 5000}),
        make_marker_id("en/fbank", "fbank", "en", params={"order": 500}),
        make_marker_id("en", "fbank", "en"),
    }
    assert len(ids) == 9


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(namespace="x", stage=""),
        dict(namespace="x", stage="a.b"),
        dict(namespace="x", stage="a/b"),
        dict(namespace="x", stage="s", language="-"),
        dict(namespace="x", stage="s", language="e=n"),
        dict(namespace="x", stage="s", params={"vo.cab": 1}),
        dict(namespace="x", stage="s", params={"vocab": 0.5}),
        dict(namespace="/abs", stage="s"),
        dict(namespace="../up", stage="s"),
    ],
)
def test_make_marker_id_rejects_ambiguous_components(kwargs):
    with pytest.raises(ValueError):
        make_marker_id(**kwargs)


def test_unit_normalizes_arguments():
    work = unit(
        "en/fbank",
        "fbank",
        language="en",
        variant="train",
        params=[("vocab", 500)],
        inputs=["a", "b"],
    )
    assert work.marker_id == "en/fbank/.fbank.en.train.vocab=500.done"
    assert str(work) == work.marker_id
    assert work.describe() == {
        "stage": "fbank",
        "language": "en",
        "variant": "train",
        "params": {"vocab": 500},
    }
    # Inputs and outputs don't change the identity of a unit.
    assert work == unit(
        "en/fbank", "fbank", language="en", variant="train", params={"vocab": 500}
    )


@pytest.fixture(params=["file", "memory"])
def store(request, tmp_path):
    if request.param == "file":
        return FileMarkerStore(tmp_path)
    return InMemoryMarkerStore()


def test_marker_store_lifecycle(store):
    marker_id = "en/fbank/.combine.en.train.done"
    assert not store.exists(marker_id)
    assert marker_id not in store
    store.mark(marker_id)
    assert store.exists(marker_id)
    assert marker_id in store
    # Marking is idempotent.
    store.mark(marker_id)
    assert store.list() == [marker_id]
    assert store.invalidate(marker_id)
    assert not store.exists(marker_id)
    assert not store.invalidate(marker_id)
    assert store.list() == []


def test_marker_store_list_is_sorted(store):
    marker_ids = [
        "en/lang_bpe_500/.words.en.vocab=500.done",
        ".download-musan.done",
        "en/fbank/.combine.en.train.done",
        "manifests/.musan.done",
    ]
    for marker_id in marker_ids:
        store.mark(marker_id)
    assert store.list() == sorted(marker_ids)


def test_file_marker_store_writes_yaml_record(tmp_path):
    store = FileMarkerStore(tmp_path)
    work = unit("en/fbank", "fbank", language="en", variant="train")
    store.mark(work.marker_id, work)
    path = tmp_path / "en" / "fbank" / ".fbank.en.train.done"
    assert path.is_file()
    record = load_yaml(path)
    assert record["marker"] == work.marker_id
    assert record["stage"] == "fbank"
    assert record["variant"] == "train"
    assert "completed_at" in record


def test_file_marker_store_ignores_temporary_and_other_files(tmp_path):
    store = FileMarkerStore(tmp_path)
    store.mark("en/.text.en.done")
    (tmp_path / "en" / ".tmp.123..text.en.done").write_text("partial")
    (tmp_path / "en" / "text").write_text("hello")
    assert store.list() == ["en/.text.en.done"]


def test_file_marker_store_failed_mark_leaves_no_marker(tmp_path, monkeypatch):
    import cvprep.markers

    def failing_save(data, path):
        path.write_text("partial")
        raise OSError("disk full")

    monkeypatch.setattr(cvprep.markers, "save_to_yaml", failing_save)
    store = FileMarkerStore(tmp_path)
    with pytest.raises(OSError):
        store.mark("en/.text.en.done")
    assert not store.exists("en/.text.en.done")
    assert list((tmp_path / "en").iterdir()) == []


def test_file_marker_store_on_missing_root(tmp_path):
    assert FileMarkerStore(tmp_path / "nonexistent").list() == []
