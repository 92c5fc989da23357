import pytest

from draftsight.core.errors import MalformedLogLine
from draftsight.features.draft.log_events import (
    ARENA_LOG,
    LOADING_LOG,
    POWER_LOG,
    ArenaGameStart,
    CardChosen,
    CardShown,
    DeckCard,
    DraftBegin,
    DraftComplete,
    HeroMarker,
    parse_line,
)
from draftsight.features.draft.log_watcher import INITIAL_TAIL_BYTES, LogWatcher, find_log_dir


@pytest.mark.parametrize(
    "source,line,expected",
    [
        (ARENA_LOG, "D 12:00:01.1 Draft.OnBegin()", DraftBegin()),
        (ARENA_LOG, "D 12:00:01.1 SetDraftMode - DRAFTING", DraftBegin()),
        (ARENA_LOG, "D 12:30:00.0 Draft.OnComplete()", DraftComplete()),
        (ARENA_LOG, "D 12:01:00.0 Draft.OnChosen(): id=CS2_029 cardType=SPELL", CardChosen("CS2_029")),
        (ARENA_LOG, "D 12:00:30.0 Hero Card = HERO_08", HeroMarker("HERO_08")),
        (ARENA_LOG, "D 12:00:31.0 Draft deck contains card EX1_116", DeckCard("EX1_116")),
        (POWER_LOG, "D 12:00:02.0 SHOW_ENTITY - Updating Entity=[id=4 zone=SETASIDE] ZONE=HAND cardId=CS2_024", CardShown("CS2_024")),
        (LOADING_LOG, "D 13:00:00.0 Gameplay.Start() GameType=GT_ARENA", ArenaGameStart()),
        (ARENA_LOG, "D 12:00:00.0 Network.Connect()", None),
        (POWER_LOG, "D 12:00:02.0 SHOW_ENTITY ZONE=PLAY cardId=CS2_024", None),
        (LOADING_LOG, "D 13:00:00.0 Gameplay.Start() GameType=GT_RANKED", None),
        ("Other.log", "Draft.OnBegin()", None),
    ],
)
def test_parse_line(source, line, expected):
    assert parse_line(source, line) == expected


@pytest.mark.parametrize(
    "source,line",
    [
        (ARENA_LOG, "Draft.OnChosen(): id="),
        (ARENA_LOG, "Hero Card ="),
        (POWER_LOG, "SHOW_ENTITY ZONE=HAND entity=7"),
    ],
)
def test_marker_without_id_is_malformed(source, line):
    with pytest.raises(MalformedLogLine):
        parse_line(source, line)


def _append(path, text):
    with path.open("a", encoding="utf-8") as fh:
        fh.write(text)


def test_incremental_reads_and_malformed_lines(tmp_path):
    arena = tmp_path / ARENA_LOG
    arena.write_text("Draft.OnBegin()\n", encoding="utf-8")
    got = []
    watcher = LogWatcher(got.append, log_dir=tmp_path)

    assert watcher.poll() == [DraftBegin()]
    assert watcher.poll() == []

    _append(arena, "noise\nDraft.OnChosen(): id=\nHero Card = HERO_02\n")
    assert watcher.poll() == [HeroMarker("HERO_02")]
    assert got == [DraftBegin(), HeroMarker("HERO_02")]
    assert watcher.stats.malformed == 1
    assert watcher.stats.per_file[ARENA_LOG] == 2


def test_partial_line_waits_for_newline(tmp_path):
    arena = tmp_path / ARENA_LOG
    arena.write_text("", encoding="utf-8")
    watcher = LogWatcher(lambda _e: None, log_dir=tmp_path)
    watcher.poll()
    _append(arena, "Draft.OnCom")
    assert watcher.poll() == []
    _append(arena, "plete()\r\n")
    assert watcher.poll() == [DraftComplete()]


def test_truncated_file_is_reread_from_start(tmp_path):
    arena = tmp_path / ARENA_LOG
    arena.write_text("filler line that is fairly long\n" * 10, encoding="utf-8")
    watcher = LogWatcher(lambda _e: None, log_dir=tmp_path)
    watcher.poll()
    arena.write_text("Draft.OnBegin()\n", encoding="utf-8")
    assert watcher.poll() == [DraftBegin()]
    assert watcher.stats.truncations == 1


def test_first_attach_reads_only_the_tail(tmp_path):
    arena = tmp_path / ARENA_LOG
    old = "Hero Card = HERO_01\n"
    filler = "x" * 99 + "\n"
    arena.write_text(old + filler * (INITIAL_TAIL_BYTES // 100 + 20) + "Draft.OnComplete()\n", encoding="utf-8")
    watcher = LogWatcher(lambda _e: None, log_dir=tmp_path)
    assert watcher.poll() == [DraftComplete()]


def test_missing_files_are_picked_up_later(tmp_path):
    watcher = LogWatcher(lambda _e: None, log_dir=tmp_path)
    assert watcher.poll() == []
    (tmp_path / POWER_LOG).write_text("SHOW_ENTITY ZONE=HAND cardId=CS2_029\n", encoding="utf-8")
    assert watcher.poll() == [CardShown("CS2_029")]


def test_handler_errors_do_not_stop_polling(tmp_path):
    (tmp_path / ARENA_LOG).write_text("Draft.OnBegin()\nDraft.OnComplete()\n", encoding="utf-8")

    def boom(_event):
        raise RuntimeError("handler broke")

    watcher = LogWatcher(boom, log_dir=tmp_path)
    assert watcher.poll() == [DraftBegin(), DraftComplete()]


def test_find_log_dir_prefers_newest_session(tmp_path, monkeypatch):
    monkeypatch.delenv("DS_GAME_LOG_DIR", raising=False)
    for name in ("Hearthstone_2024_01_01_10_00_00", "Hearthstone_2024_03_02_09_30_00", "Hearthstone_2025_01_01_00_00_00"):
        (tmp_path / name).mkdir()
    (tmp_path / "Hearthstone_2024_01_01_10_00_00" / ARENA_LOG).write_text("", encoding="utf-8")
    (tmp_path / "Hearthstone_2024_03_02_09_30_00" / POWER_LOG).write_text("", encoding="utf-8")
    (tmp_path / "not_a_session").mkdir()
    # the 2025 folder has no tracked logs yet
    assert find_log_dir([tmp_path / "missing", tmp_path]) == tmp_path / "Hearthstone_2024_03_02_09_30_00"


def test_find_log_dir_falls_back_to_root_and_env(tmp_path, monkeypatch):
    monkeypatch.delenv("DS_GAME_LOG_DIR", raising=False)
    assert find_log_dir([tmp_path]) is None
    (tmp_path / LOADING_LOG).write_text("", encoding="utf-8")
    assert find_log_dir([tmp_path]) == tmp_path
    monkeypatch.setenv("DS_GAME_LOG_DIR", str(tmp_path / "elsewhere"))
    assert find_log_dir([tmp_path]) == tmp_path / "elsewhere"
