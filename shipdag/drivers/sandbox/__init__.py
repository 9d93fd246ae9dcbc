from shipdag.drivers.sandbox.docker_sandbox import DockerSandbox

__all__ = ["DockerSandbox"]
