# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the migration runner's revision selection."""

import importlib

from src.infrastructure.database.migrations.runner import (
    MIGRATIONS,
    _get_pending_migrations,
)


class TestPendingMigrations:
    """Tests for _get_pending_migrations."""

    def test_fresh_database_gets_everything(self):
        """Verify an empty database receives every revision."""
        assert _get_pending_migrations(None) == MIGRATIONS

    def test_up_to_date(self):
        """Verify nothing is pending at the latest revision."""
        assert _get_pending_migrations(MIGRATIONS[-1]) == []

    def test_unknown_current_version(self):
        """Verify an unknown stored version applies nothing."""
        assert _get_pending_migrations("999_unknown") == []

    def test_unknown_target(self):
        """Verify an unknown target applies nothing."""
        assert _get_pending_migrations(None, target_revision="999_unknown") == []


class TestRevisionModules:
    """Tests for the revision modules."""

    def test_every_revision_has_upgrade_and_downgrade(self):
        """Verify each listed revision can be applied and reverted."""
        for revision in MIGRATIONS:
            module = importlib.import_module(
                f"src.infrastructure.database.migrations.versions.{revision}"
            )
            assert callable(module.upgrade)
            assert callable(module.downgrade)
