import logging
from pathlib import Path

from source_context.obs.logging import (
    SecretRedactingFilter,
    configure_logging,
    get_logger,
    preview,
    redact,
)


def test_redact_scrubs_credentials() -> None:
    text = "key sk-abcdefghijklmnopqrstuvwxyz012345 apiKey: ABCDEFGHIJKLMNOPQRSTUVWXYZ password=hunter22"

    cleaned = redact(text)

    assert "sk-abcdefghijklmnopqrstuvwxyz012345" not in cleaned
    assert "ABCDEFGHIJKLMNOPQRSTUVWXYZ" not in cleaned
    assert "hunter22" not in cleaned
    assert "[REDACTED-API-KEY]" in cleaned


def test_filter_rewrites_rendered_message() -> None:
    record = logging.LogRecord(
        name="source_context.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Using key %s",
        args=("sk-abcdefghijklmnopqrstuvwxyz012345",),
        exc_info=None,
    )

    assert SecretRedactingFilter().filter(record) is True
    assert record.getMessage() == "Using key [REDACTED-API-KEY]"


def test_configure_logging_is_idempotent(tmp_path: Path) -> None:
    root = logging.getLogger("source_context")
    try:
        configure_logging(verbose=True)
        logger = configure_logging(verbose=True, log_file=tmp_path / "detect.log")

        assert len(logger.handlers) == 2
        assert logger.level == logging.DEBUG
        assert all(
            any(isinstance(f, SecretRedactingFilter) for f in handler.filters)
            for handler in logger.handlers
        )

        get_logger("job-queue").info("token=abcdefghijklmnopqrstuvwxyz")
        for handler in logger.handlers:
            handler.flush()
        written = (tmp_path / "detect.log").read_text(encoding="utf-8")
        assert "abcdefghijklmnopqrstuvwxyz" not in written
        assert "source_context.job-queue" in written
    finally:
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
        root.propagate = True
        root.setLevel(logging.NOTSET)


def test_preview_truncates() -> None:
    assert preview("abc", 5) == "abc"
    assert preview("abcdefgh", 5) == "abcde..."
