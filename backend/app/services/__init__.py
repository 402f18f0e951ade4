"""
Schedule & Bracket Engine

Pure engine modules take model instances as snapshots and return plans or
read models; session-level entry points run every guard before the first
write and commit once. Rejections are typed (see engine_errors) and carry
no HTTP knowledge.
"""
