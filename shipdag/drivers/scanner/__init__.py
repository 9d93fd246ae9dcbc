from shipdag.drivers.scanner.trivy import TrivyScanner, parse_trivy_report

__all__ = ["TrivyScanner", "parse_trivy_report"]
