from cibot.integrations.git.commit_graph import GitCommitGraph

__all__ = ["GitCommitGraph"]
