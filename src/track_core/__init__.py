"""
track_core: hierarchical work tracks with blocking dependencies.

Entry points for hosts live in bootstrap.py (init_project/open_project) and
tracks/track_api.py (TrackManager).
"""
