"""TOC command implementation."""

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.tree import Tree

from cont_srv.core.book import Book
from cont_srv.models.epub import TocNode


def build_tree(node: TocNode, label: str) -> Tree:
    """Mirror a TOC node and its descendants as a rich Tree."""
    tree = Tree(label)
    pending = [(tree, child) for child in node.children]
    while pending:
        parent, child = pending.pop(0)
        target = f" [dim]{escape(child.target.href)}[/]" if child.target else ""
        branch = parent.add(f"{escape(child.title)}{target}")
        pending[0:0] = [(branch, grandchild) for grandchild in child.children]
    return tree


def execute_toc(book_path: Path, console: Console) -> None:
    """Display book metadata and table of contents."""
    book = Book.open(book_path)
    try:
        metadata = book.structure.metadata
        info_lines = [
            f"[bold]{escape(metadata.title)}[/]",
            "",
            f"[dim]Author(s):[/] {escape(', '.join(metadata.authors)) or 'Unknown'}",
            f"[dim]Language:[/] {metadata.language or 'Unknown'}",
            f"[dim]Publisher:[/] {metadata.publisher or 'Unknown'}",
            f"[dim]Package:[/] {book.structure.package_path}",
            f"[dim]Resources:[/] {len(book.structure.resources)}",
            f"[dim]Spine items:[/] {len(book.structure.spine)}",
            f"[dim]TOC source:[/] {book.toc.source.value}",
        ]

        console.print()
        console.print(
            Panel(
                "\n".join(info_lines),
                title="Book Information",
                border_style="green",
            )
        )
        console.print()
        console.print(build_tree(book.toc.root, "[bold cyan]Table of Contents[/]"))
        console.print()
    finally:
        book.retire()
