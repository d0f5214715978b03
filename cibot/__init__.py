"""cibot: decides which Jenkins builds to run for Bitbucket Server events."""
