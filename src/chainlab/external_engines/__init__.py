"""External image-processing engines, each invoked as a child process."""
