"""
Tests for configuration and structured logging
"""

import json
import logging

from card_banking.config import CardBankingConfig, reload_config
from card_banking.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestConfiguration:

    def test_defaults(self):
        """Test built-in defaults"""
        cfg = CardBankingConfig()
        assert cfg.transfer_max_retries == 5
        assert cfg.jwt_algorithm == "HS256"
        assert cfg.auth_enabled is True

    def test_environment_overrides(self, monkeypatch):
        """Test CARDBANK_ environment variables override defaults"""
        monkeypatch.setenv("CARDBANK_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("CARDBANK_TRANSFER_MAX_RETRIES", "9")
        monkeypatch.setenv("CARDBANK_ENCRYPTION_MASTER_KEY", "from-env")

        cfg = reload_config()
        assert cfg.storage_backend == "memory"
        assert cfg.transfer_max_retries == 9
        assert cfg.encryption_master_key == "from-env"

        monkeypatch.delenv("CARDBANK_STORAGE_BACKEND")
        monkeypatch.delenv("CARDBANK_TRANSFER_MAX_RETRIES")
        monkeypatch.delenv("CARDBANK_ENCRYPTION_MASTER_KEY")
        reload_config()


class TestStructuredLogging:

    def test_json_formatter(self):
        """Test JSON lines carry message and structured fields"""
        logger = get_logger("card_banking.test")
        record = logger.makeRecord(
            logger.name, logging.INFO, __file__, 1, "Transfer completed", (), None,
            extra={"username": "alice", "action": "create_transfer", "extra": {"amount": "1.00"}}
        )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Transfer completed"
        assert entry["username"] == "alice"
        assert entry["action"] == "create_transfer"
        assert entry["extra"] == {"amount": "1.00"}
        assert "resource" not in entry

    def test_log_action_attaches_fields(self, caplog):
        """Test log_action sets level, action, resource and extra"""
        logger = setup_logging("DEBUG", "text", logger_name="card_banking_test")
        logger.addHandler(caplog.handler)
        try:
            log_action(logger, "warning", "Card status changed", action="change_card_status",
                       resource="card:1", extra={"to": "BLOCKED"})
        finally:
            logger.removeHandler(caplog.handler)

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.action == "change_card_status"
        assert record.resource == "card:1"
        assert record.extra == {"to": "BLOCKED"}
