from .processor import CancellationToken, ProcessResult, Processor, process_vault

__all__ = ["CancellationToken", "ProcessResult", "Processor", "process_vault"]
