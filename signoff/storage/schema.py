"""
Database schema definitions for signoff.

This module defines the SQLite database schema as SQL strings.
The schema includes tables for the user and document directories,
approval workflows and their steps, and the in-app notification inbox.

Timestamps are stored as UTC ISO-8601 strings with microsecond
precision, so lexical comparison in SQL matches chronological order.
"""

# Current schema version - increment when making schema changes
SCHEMA_VERSION = 2

# Schema version tracking table
SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now')),
    description TEXT
);
"""

# Users known to the identity directory
USERS_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT,
    display_name TEXT,
    created_at TEXT NOT NULL
);
"""

# Documents that can be routed for approval
DOCUMENTS_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    file_url TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id);
"""

# Approval workflows - at most one active workflow per document
APPROVAL_WORKFLOWS_SQL = """
CREATE TABLE IF NOT EXISTS approval_workflows (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('SEQUENTIAL', 'PARALLEL')),
    status TEXT NOT NULL DEFAULT 'PENDING'
        CHECK (status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED', 'REJECTED')),
    initiator_id TEXT NOT NULL,
    deadline TEXT,
    overdue_notified_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_workflows_document ON approval_workflows(document_id);
CREATE INDEX IF NOT EXISTS idx_workflows_initiator ON approval_workflows(initiator_id);
CREATE INDEX IF NOT EXISTS idx_workflows_status ON approval_workflows(status);
CREATE INDEX IF NOT EXISTS idx_workflows_deadline ON approval_workflows(deadline);
CREATE UNIQUE INDEX IF NOT EXISTS idx_workflows_active_document
    ON approval_workflows(document_id)
    WHERE status IN ('PENDING', 'IN_PROGRESS');
"""

# Approval steps - owned by their workflow
APPROVAL_STEPS_SQL = """
CREATE TABLE IF NOT EXISTS approval_steps (
    id TEXT PRIMARY KEY,
    workflow_id TEXT NOT NULL,
    approver_id TEXT NOT NULL,
    step_order INTEGER NOT NULL CHECK (step_order >= 1),
    status TEXT NOT NULL DEFAULT 'PENDING'
        CHECK (status IN ('PENDING', 'APPROVED', 'REJECTED', 'RETURNED', 'RESUBMITTED')),
    deadline TEXT,
    comment TEXT,
    rejection_reason TEXT,
    resubmission_explanation TEXT,
    return_to_step_id TEXT,
    next_step_id TEXT,
    is_resubmitted INTEGER NOT NULL DEFAULT 0,
    is_overdue INTEGER NOT NULL DEFAULT 0,
    is_read INTEGER NOT NULL DEFAULT 0,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (workflow_id) REFERENCES approval_workflows(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_steps_workflow ON approval_steps(workflow_id, step_order);
CREATE INDEX IF NOT EXISTS idx_steps_approver ON approval_steps(approver_id, status);
CREATE INDEX IF NOT EXISTS idx_steps_deadline ON approval_steps(status, deadline);
"""

# In-app notification inbox
NOTIFICATIONS_SQL = """
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    is_read INTEGER NOT NULL DEFAULT 0,
    metadata TEXT,  -- JSON metadata
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read);
"""

# Complete schema SQL - all tables in order
SCHEMA_SQL = f"""
{SCHEMA_VERSION_SQL}

{USERS_SQL}

{DOCUMENTS_SQL}

{APPROVAL_WORKFLOWS_SQL}

{APPROVAL_STEPS_SQL}

{NOTIFICATIONS_SQL}

-- Record the schema version on first initialization only
INSERT INTO schema_version (version, description)
SELECT {SCHEMA_VERSION}, 'Initial schema'
WHERE NOT EXISTS (SELECT 1 FROM schema_version);
"""

# List of all tables for reference
TABLES = [
    "schema_version",
    "users",
    "documents",
    "approval_workflows",
    "approval_steps",
    "notifications",
]
