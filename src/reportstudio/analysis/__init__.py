"""Analysis modules: schema detection, profiling, statistics."""
