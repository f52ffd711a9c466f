"""
KS Forward - Daily KS Forward video summary pipeline

Modules:
    youtube: Locate the latest matching video on a channel
    transcripts: Fetch transcripts from the cache, Supadata or YouTube captions
    assistant: Summarize transcripts with the AI chat backend
    notify: Send the summary to Discord as embeds
    pipeline: Run the stages once, end to end
"""

from .config import Config
from .errors import PipelineError
from .pipeline import KSForwardPipeline

__all__ = [
    "Config",
    "KSForwardPipeline",
    "PipelineError",
]
