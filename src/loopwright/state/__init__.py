from loopwright.state.frontmatter import FrontmatterError, dumps_document, loads_document
from loopwright.state.store import StateStore, render_body

__all__ = ["FrontmatterError", "StateStore", "dumps_document", "loads_document", "render_body"]
