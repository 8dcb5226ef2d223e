"""Tests for the optional shrink step."""

from conftest import FakeShrinker, make_artifact
from pibackup.shrink import shrink_image


class TestShrinkImage:
    def test_disabled(self, tools, dest):
        image = make_artifact(dest, "pi.20250101_000000.img")
        result = shrink_image(tools, image, enabled=False)
        assert result.skipped is True
        assert tools.shrinker.calls == []

    def test_success(self, tools, dest):
        image = make_artifact(dest, "pi.20250101_000000.img", size=4096)
        tools.shrinker = FakeShrinker(shrink_to=1024)

        result = shrink_image(tools, image)

        assert result.succeeded is True
        assert result.size_before == 4096
        assert result.size_after == 1024
        assert tools.shrinker.calls == [image]

    def test_failure_keeps_image(self, tools, dest):
        image = make_artifact(dest, "pi.20250101_000000.img", size=4096)
        tools.shrinker = FakeShrinker(fail=True)

        result = shrink_image(tools, image)

        assert result.succeeded is False
        assert "exited with code 1" in result.error
        assert image.stat().st_size == 4096

    def test_exception_is_not_fatal(self, tools, dest):
        image = make_artifact(dest, "pi.20250101_000000.img")
        tools.shrinker = FakeShrinker(raises=OSError("losetup failed"))

        result = shrink_image(tools, image)

        assert result.succeeded is False
        assert result.error == "losetup failed"
        assert image.exists()
