"""
ytmp3-cli: fetch YouTube audio through an ordered chain of acquisition
strategies and deliver it as tagged MP3.
"""

__version__ = "1.0.0"
