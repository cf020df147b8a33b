# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database migrations package.

Revisions under versions/ create the tables owned by the grade pipeline.
Platform tables (grades, attendance, enrollments, ...) are migrated by
the platform that owns them.
"""
