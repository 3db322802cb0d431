"""
Resumable ownership transfer over a remote file tree.

Each invocation runs one time-bounded slice of a depth-first traversal,
checkpoints the unvisited remainder and schedules the next slice.
"""
