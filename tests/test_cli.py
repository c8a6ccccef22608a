import pytest
from click.testing import CliRunner

from schoolnews.cli import cli


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("SCHOOLNEWS_BACKEND", "sql")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    return CliRunner()


def test_render_comment(runner):
    result = runner.invoke(cli, ["render", "Visit example.com <script>x</script>"])
    assert result.exit_code == 0
    assert '<a href="http://example.com">example.com</a> x' in result.output


def test_render_links_only(runner):
    result = runner.invoke(cli, ["render", "--links-only", "<b>example.com</b>"])
    assert result.exit_code == 0
    assert '<b><a href="http://example.com">example.com</a></b>' in result.output


def test_init_db_and_create_admin(runner):
    result = runner.invoke(cli, ["init-db"])
    assert result.exit_code == 0
    assert "sql store ready" in result.output

    result = runner.invoke(cli, [
        "create-admin", "--email", "Head@StJosefSchool.com", "--name", "Head of School", "--password", "secret123",
    ])
    assert result.exit_code == 0
    assert "head@stjosefschool.com" in result.output

    result = runner.invoke(cli, [
        "create-admin", "--email", "head@stjosefschool.com", "--name", "Again", "--password", "secret123",
    ])
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_posts_empty(runner):
    result = runner.invoke(cli, ["posts"])
    assert result.exit_code == 0
    assert "No posts found" in result.output


def test_render_reads_stdin(runner):
    result = runner.invoke(cli, ["render"], input="<p onclick=\"x()\">Hello</p>\n")
    assert result.exit_code == 0
    assert "<p>Hello</p>" in result.output
