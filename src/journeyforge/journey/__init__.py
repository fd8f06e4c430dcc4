"""Journey document parsing: front matter, sections and inline hints."""

from journeyforge.journey.hints import InlineHints, extract_hints
from journeyforge.journey.parser import parse_journey, parse_journey_file

__all__ = ["parse_journey", "parse_journey_file", "InlineHints", "extract_hints"]
