from datetime import date

import cc_heatmap
from cc_heatmap import (
    DateRange,
    ParserState,
    ProofLogParser,
    Session,
    SessionDraft,
    load_sessions_by_date,
    parse_proof_log,
)

LOG = """\
# 2024-03-04

### 2024-03-04 09:00-10:30 JST
- いつ: 2024-03-04 09:00-10:30 JST（90分）
- どこで: alpha
- なに: refactor parser

### 2024-03-04 14:00-14:20 JST
- いつ: 2024-03-04 14:00-14:20 JST（20分）
"""


def write_log(log_dir, day, text):
    path = log_dir / f"{day}.md"
    path.write_text(text, encoding="utf-8")
    return path


def test_parses_sessions_in_file_order():
    sessions = parse_proof_log(LOG)
    assert sessions == [
        Session(date(2024, 3, 4), "09:00", "10:30", 90, "alpha"),
        Session(date(2024, 3, 4), "14:00", "14:20", 20, None),
    ]


def test_session_without_duration_defaults_to_zero():
    sessions = parse_proof_log("### 2024-03-05 09:00-09:10 JST\n- どこで: beta\n")
    assert sessions == [Session(date(2024, 3, 5), "09:00", "09:10", 0, "beta")]


def test_lines_before_first_header_are_ignored():
    text = "- いつ: x JST（45分）\n- どこで: stray\n" + LOG
    sessions = parse_proof_log(text)
    assert [s.duration_minutes for s in sessions] == [90, 20]
    assert sessions[0].project == "alpha"


def test_malformed_lines_are_ignored():
    text = (
        "### 2024-03-04 9:00-10:30 JST\n"  # single-digit hour, not a header
        "### 2024-03-04 09:00-10:30 JST\n"
        "- いつ: 2024-03-04 JST（ninety分）\n"
        "garbage\n"
        "- どこで: gamma  \n"
    )
    assert parse_proof_log(text) == [Session(date(2024, 3, 4), "09:00", "10:30", 0, "gamma")]


def test_header_with_impossible_date_still_opens_a_session():
    text = (
        "### 2024-03-04 09:00-09:30 JST\n"
        "- いつ: x JST（30分）\n"
        "- どこで: alpha\n"
        "### 2024-02-31 10:00-11:00 JST\n"
        "- いつ: y JST（60分）\n"
        "- どこで: beta\n"
    )
    assert parse_proof_log(text) == [
        Session(date(2024, 3, 4), "09:00", "09:30", 30, "alpha"),
        Session(None, "10:00", "11:00", 60, "beta"),
    ]


def test_only_newline_separates_lines():
    text = "### 2024-03-04 09:00-09:30 JST\r\n- いつ: x JST（30分）\r\n- どこで: alpha\x0cbeta gamma\r\n"
    assert parse_proof_log(text) == [
        Session(date(2024, 3, 4), "09:00", "09:30", 30, "alpha\x0cbeta gamma"),
    ]


def test_leading_whitespace_is_stripped():
    text = "   ### 2024-03-04 09:00-10:30 JST\n\t- いつ: a JST（15分）\n"
    assert parse_proof_log(text)[0].duration_minutes == 15


def test_empty_input_yields_nothing():
    assert parse_proof_log("") == []


def test_state_transitions():
    parser = ProofLogParser()
    assert parser.state is ParserState.IDLE

    parser.feed("- いつ: ignored JST（10分）")
    assert parser.state is ParserState.IDLE

    parser.feed("### 2024-03-04 09:00-10:30 JST")
    assert parser.state is ParserState.SESSION_OPEN
    assert parser.sessions == []

    parser.feed("### 2024-03-04 11:00-12:00 JST")
    assert parser.state is ParserState.SESSION_OPEN
    assert len(parser.sessions) == 1

    sessions = parser.finish()
    assert parser.state is ParserState.IDLE
    assert len(sessions) == 2


def test_load_skips_missing_and_reads_present(tmp_path):
    write_log(tmp_path, "2024-03-04", LOG)
    date_range = DateRange(date(2024, 3, 3), date(2024, 3, 9))

    found = load_sessions_by_date(tmp_path, date_range)

    assert list(found) == [date(2024, 3, 4)]
    assert len(found[date(2024, 3, 4)]) == 2


def test_load_ignores_files_outside_range(tmp_path):
    write_log(tmp_path, "2024-01-01", LOG)
    found = load_sessions_by_date(tmp_path, DateRange(date(2024, 3, 3), date(2024, 3, 9)))
    assert found == {}


def test_load_keeps_sessions_around_invalid_bytes(tmp_path):
    text = LOG.replace("- なに: refactor parser", "- なに: refactor \udcff parser")
    data = text.encode("utf-8", errors="surrogateescape")
    assert b"\xff" in data
    (tmp_path / "2024-03-04.md").write_bytes(data)

    found = load_sessions_by_date(tmp_path, DateRange(date(2024, 3, 3), date(2024, 3, 9)))

    sessions = found[date(2024, 3, 4)]
    assert [s.duration_minutes for s in sessions] == [90, 20]
    assert sessions[0].project == "alpha"


def test_load_skips_file_that_fails_to_read(tmp_path, monkeypatch, capsys):
    write_log(tmp_path, "2024-03-04", LOG)
    write_log(tmp_path, "2024-03-05", LOG)
    real_read_text = cc_heatmap.Path.read_text

    def flaky_read_text(self, *args, **kwargs):
        if self.name == "2024-03-04.md":
            raise PermissionError("denied")
        return real_read_text(self, *args, **kwargs)

    monkeypatch.setattr(cc_heatmap.Path, "read_text", flaky_read_text)
    found = load_sessions_by_date(tmp_path, DateRange(date(2024, 3, 3), date(2024, 3, 9)), verbose=True)
    assert list(found) == [date(2024, 3, 5)]
    assert "Skipping unreadable log" in capsys.readouterr().err


def test_load_from_missing_directory(tmp_path):
    assert load_sessions_by_date(tmp_path / "nope", DateRange(date(2024, 3, 3), date(2024, 3, 9))) == {}


def test_draft_freezes_into_session():
    draft = SessionDraft(date(2024, 3, 4), "09:00", "10:00")
    draft.duration_minutes = 60
    draft.project = "alpha"
    assert draft.freeze() == Session(date(2024, 3, 4), "09:00", "10:00", 60, "alpha")
