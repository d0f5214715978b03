from cibot.integrations.jenkins.client import JenkinsDispatcher, build_parameters

__all__ = ["JenkinsDispatcher", "build_parameters"]
