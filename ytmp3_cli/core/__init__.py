"""
Core application engine for orchestrating track pipelines.

The `PipelineOrchestrator` drives a single track through acquisition and
transcoding; the `BatchController` runs many of them under a concurrency
bound, sharing one `CancelToken`.
"""
