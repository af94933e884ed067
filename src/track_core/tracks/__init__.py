"""
Track subsystem.

Components:
- track_models.py: data structures (Track, TrackStatus, status sets)
- track_errors.py: error variants raised by every operation
- track_ids.py: 8-character id generation
- track_store.py: SQLite-backed storage with transaction scope
- hierarchy.py: create, children/descendants, sibling reordering, cascade delete
- dependencies.py: blocking edges and cycle checks
- status_machine.py: status transitions and their cascades, archiving
- projection.py: read-only composite views for renderers
- track_api.py: TrackManager, the facade used by hosts
"""
