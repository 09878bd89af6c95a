"""State/cache layer.

Cache policy profiles, the in-memory query cache and the coherency
monitor that invalidates a whole data domain when its flush marker moves.
"""
