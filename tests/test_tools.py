import pytest

from figexport import external, ghostscript, pdftops
from figexport.exceptions import ExternalToolError, GhostscriptNotFoundError
from figexport.settings import get_setting, update_setting


@pytest.fixture
def fake_run(monkeypatch):
    """Replace subprocess calls; paths in `working` answer -h successfully."""
    working = {}
    calls = []

    def run(executable, args):
        calls.append((executable, list(args)))
        if executable not in working:
            raise OSError(f"{executable} not found")
        return working[executable]

    monkeypatch.setattr(ghostscript, "run_command", run)
    monkeypatch.setattr(pdftops, "run_command", run)
    monkeypatch.setattr(ghostscript, "_checked", {})
    monkeypatch.setattr(external.shutil, "which", lambda name: None)
    run.working = working
    run.calls = calls
    return run


def test_tool_env_clears_library_path(monkeypatch):
    monkeypatch.setattr(external, "IS_MAC", False)
    monkeypatch.setattr(external, "IS_WINDOWS", False)
    monkeypatch.setenv("LD_LIBRARY_PATH", "/opt/app/lib")
    assert external.tool_env()["LD_LIBRARY_PATH"] == ""


def test_check_gs_path_caches_result(fake_run):
    fake_run.working["/opt/gs"] = (0, "")
    assert ghostscript.check_gs_path("/opt/gs")
    assert ghostscript.check_gs_path("/opt/gs")
    assert len(fake_run.calls) == 1
    assert not ghostscript.check_gs_path("")


def test_find_ghostscript_uses_stored_path(fake_run, tmp_path):
    gs = tmp_path / "gs"
    gs.write_text("")
    fake_run.working[str(gs)] = (0, "")
    update_setting("ghostscript", str(gs))
    assert ghostscript.find_ghostscript() == str(gs)


def test_find_ghostscript_searches_path(fake_run, monkeypatch, tmp_path):
    gs = tmp_path / "bin" / "gs"
    gs.parent.mkdir()
    gs.write_text("")
    monkeypatch.setattr(ghostscript, "IS_WINDOWS", False)
    monkeypatch.setattr(external.shutil, "which", lambda name: str(gs) if name == "gs" else None)
    fake_run.working[str(gs)] = (0, "")
    assert ghostscript.find_ghostscript() == str(gs)
    assert get_setting("ghostscript") == str(gs)


def test_find_ghostscript_not_found(fake_run):
    with pytest.raises(GhostscriptNotFoundError) as exc:
        ghostscript.find_ghostscript()
    assert "ghostscript.com" in exc.value.user_message or "uoregon" in exc.value.user_message


def test_gs_version(monkeypatch):
    monkeypatch.setattr(ghostscript, "ghostscript", lambda args: (0, "10.02.1\n"))
    assert ghostscript.gs_version() == "10.02.1"


def test_gs_version_unknown(monkeypatch):
    def fail(args):
        raise ExternalToolError("Ghostscript", "boom")

    monkeypatch.setattr(ghostscript, "ghostscript", fail)
    assert ghostscript.gs_version() == ""


def test_check_xpdf_path(fake_run):
    fake_run.working["pdftops"] = (99, "pdftops version 4.04\nUsage: pdftops [options] <PDF-file> [<PS-file>]\n  -eps : generate Encapsulated PostScript")
    fake_run.working["other"] = (0, "usage: other")
    assert pdftops.check_xpdf_path("pdftops")
    assert not pdftops.check_xpdf_path("other")
    assert not pdftops.check_xpdf_path("missing")


def test_fix_dsc_header():
    text = "%!PS-Adobe-3.0 EPSF-3.0\n% Produced by xpdf/pdftops 4.04\n%%Creator: x\n"
    fixed = pdftops.fix_dsc_header(text)
    assert fixed.splitlines()[1] == "%%Produced by xpdf/pdftops 4.04"
    assert pdftops.fix_dsc_header(fixed) == fixed


def test_pdf_to_eps(monkeypatch, tmp_path):
    calls = []

    def fake_pdftops(args):
        calls.append(args)
        with open(args[-1], "w") as f:
            f.write("%!PS-Adobe-3.0 EPSF-3.0\n% Produced by pdftops\nshowpage\n")
        return 0, ""

    monkeypatch.setattr(pdftops, "pdftops", fake_pdftops)
    dest = tmp_path / "out.eps"
    pdftops.pdf_to_eps(tmp_path / "in.pdf", dest)
    assert calls[0][:5] == ["-q", "-paper", "match", "-eps", "-level2"]
    assert "%%Produced by pdftops" in dest.read_text()


def test_pdf_to_eps_failure(monkeypatch, tmp_path):
    monkeypatch.setattr(pdftops, "pdftops", lambda args: (1, "Syntax Error"))
    with pytest.raises(ExternalToolError):
        pdftops.pdf_to_eps(tmp_path / "in.pdf", tmp_path / "out.eps")
