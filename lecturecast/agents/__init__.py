"""
Generation agents: collaborators, queues, orchestration and persistence.
"""
