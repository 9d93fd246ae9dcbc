from shipdag.drivers.registry.docker_registry import DockerRegistry

__all__ = ["DockerRegistry"]
