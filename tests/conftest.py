from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixture_path():
    def _path(name: str) -> Path:
        return FIXTURES / name
    return _path


@pytest.fixture
def load_fixture():
    def _load(name: str) -> str:
        return (FIXTURES / name).read_text(encoding="utf-8")
    return _load


@pytest.fixture
def make_tar():
    """Build TAR text from frontmatter fields and a Markdown body."""
    def _make(body: str, file_type: str = "Test Case", owner: str = "Sales",
              mode: str = "Standalone") -> str:
        lines = ["---", f"type: {file_type}", f"owner: {owner}"]
        if mode:
            lines.append(f"mode: {mode}")
        lines.append("---")
        return "\n".join(lines) + "\n" + body
    return _make
