from shipdag.drivers.command.subprocess_runner import SubprocessCommandRunner

__all__ = ["SubprocessCommandRunner"]
