SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS nodes (
  id TEXT PRIMARY KEY,
  type TEXT NOT NULL,
  title TEXT NOT NULL,
  file TEXT NOT NULL,
  pos INTEGER NOT NULL DEFAULT 0,
  outline_json TEXT NOT NULL DEFAULT '[]',
  is_container INTEGER NOT NULL DEFAULT 0,
  modified_at REAL
);

CREATE TABLE IF NOT EXISTS relations (
  source_id TEXT NOT NULL,
  target_id TEXT NOT NULL,
  rel_type TEXT NOT NULL,
  note TEXT,
  -- document that declared the relation
  file TEXT,
  PRIMARY KEY (source_id, target_id, rel_type)
);

CREATE TABLE IF NOT EXISTS documents (
  path TEXT PRIMARY KEY,
  modified_at REAL NOT NULL,
  node_count INTEGER NOT NULL,
  last_scanned_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_nodes_type ON nodes(type);
CREATE INDEX IF NOT EXISTS idx_nodes_file ON nodes(file);
CREATE INDEX IF NOT EXISTS idx_relations_source ON relations(source_id);
CREATE INDEX IF NOT EXISTS idx_relations_target ON relations(target_id);
CREATE INDEX IF NOT EXISTS idx_relations_type ON relations(rel_type);
"""
