"""
Tree-sitter based chunking strategy for multiple languages.

Uses AST parsing to extract functions, classes and type declarations as
semantic chunks. Supports JavaScript, TypeScript (including TSX) and Go.
"""

import logging
from typing import Callable, Optional
from tree_sitter import Language, Parser, Node

from ..errors import ParseDegradation
from ..models import Chunk, ChunkKind
from .base import ChunkStrategy, split_lines, whole_file_chunk
from .fallback import FallbackChunker

logger = logging.getLogger(__name__)

# Language modules are imported on demand in _get_language()

_FUNCTION_VALUE_TYPES = ("arrow_function", "function_expression", "function", "generator_function")


class TreeSitterChunker(ChunkStrategy):
    """
    Multi-language AST-based chunking strategy using tree-sitter.

    Every declaration node becomes a chunk covering the whole source lines it
    spans, so nested declarations (methods in a class) appear alongside their
    container. When parsing throws, or the tree has errors and yields no
    declarations, the file is handed to the fallback chunker instead.

    Supported languages: JavaScript, TypeScript, TSX, Go
    """

    # Class-level cache for lazy-loaded languages
    _languages: dict[str, Language] = {}

    # Language-specific configurations
    LANGUAGE_CONFIGS = {
        "javascript": {
            "definition_types": [
                "function_declaration",
                "generator_function_declaration",
                "class_declaration",
                "method_definition",
                "variable_declarator",  # For arrow functions
            ],
            "name_extractor": "_extract_js_name",
        },
        "typescript": {
            "definition_types": [
                "function_declaration",
                "generator_function_declaration",
                "class_declaration",
                "abstract_class_declaration",
                "method_definition",
                "interface_declaration",
                "type_alias_declaration",
                "variable_declarator",
            ],
            "name_extractor": "_extract_js_name",
        },
        "tsx": {
            "definition_types": [
                "function_declaration",
                "generator_function_declaration",
                "class_declaration",
                "abstract_class_declaration",
                "method_definition",
                "interface_declaration",
                "type_alias_declaration",
                "variable_declarator",
            ],
            "name_extractor": "_extract_js_name",
        },
        "go": {
            "definition_types": [
                "function_declaration",
                "method_declaration",
                "type_spec",  # For structs and interfaces
            ],
            "name_extractor": "_extract_go_name",
        },
    }

    KIND_MAPPING = {
        "function_declaration": ChunkKind.FUNCTION,
        "generator_function_declaration": ChunkKind.FUNCTION,
        "variable_declarator": ChunkKind.FUNCTION,
        "method_definition": ChunkKind.METHOD,
        "method_declaration": ChunkKind.METHOD,
        "class_declaration": ChunkKind.CLASS,
        "abstract_class_declaration": ChunkKind.CLASS,
        "interface_declaration": ChunkKind.INTERFACE,
        "type_alias_declaration": ChunkKind.TYPE,
        "type_spec": ChunkKind.TYPE,
    }

    @classmethod
    def _get_language(cls, lang: str) -> Language:
        """
        Lazy-load a tree-sitter language module.

        Args:
            lang: Language name ("javascript", "typescript", "tsx", "go")

        Returns:
            Language instance

        Raises:
            ValueError: If language is not supported
        """
        if lang not in cls._languages:
            logger.debug(f"Lazy-loading tree-sitter language: {lang}")
            if lang == "javascript":
                import tree_sitter_javascript as ts
                cls._languages[lang] = Language(ts.language())
            elif lang == "typescript":
                import tree_sitter_typescript as ts
                cls._languages[lang] = Language(ts.language_typescript())
            elif lang == "tsx":
                import tree_sitter_typescript as ts
                cls._languages[lang] = Language(ts.language_tsx())
            elif lang == "go":
                import tree_sitter_go as ts
                cls._languages[lang] = Language(ts.language())
            else:
                raise ValueError(f"Unsupported language: {lang}")
        return cls._languages[lang]

    def __init__(self, language: str, max_chunk_chars: int = 1500):
        """
        Initialize the tree-sitter chunker.

        Args:
            language: Grammar name ("javascript", "typescript", "tsx", "go")
            max_chunk_chars: Window size for the fallback chunker

        Raises:
            ValueError: If language is not supported
        """
        self.language_name = language

        self.config = self.LANGUAGE_CONFIGS.get(language)
        if not self.config:
            raise ValueError(
                f"Unsupported language: {language}. "
                f"Supported: {list(self.LANGUAGE_CONFIGS.keys())}"
            )

        self.language = self._get_language(language)
        self.parser = Parser(self.language)
        self.definition_types = frozenset(self.config["definition_types"])
        self.name_extractor: Callable[[Node], Optional[str]] = getattr(self, self.config["name_extractor"])

        self.fallback_chunker = FallbackChunker(max_chunk_chars=max_chunk_chars)

    def chunk(self, content: str, path: str) -> list[Chunk]:
        """
        Split code into declaration chunks.

        Args:
            content: The source code
            path: Project-relative file path

        Returns:
            Declaration chunks in source order, a single module chunk when
            the file declares nothing, or fallback windows when parsing failed
        """
        if not content.strip():
            return []

        try:
            return self.chunk_structured(content, path)
        except ParseDegradation as e:
            logger.warning(
                f"Tree-sitter parsing degraded for {path} ({self.language_name}): {e}. "
                f"Using fallback chunker"
            )
            return self.fallback_chunker.chunk(content, path)

    def chunk_structured(self, content: str, path: str) -> list[Chunk]:
        """
        Extract declarations without any fallback.

        Raises:
            ParseDegradation: If the parser fails, or the tree contains errors
                and no declaration could be recovered from it
        """
        lines = split_lines(content)

        try:
            tree = self.parser.parse(content.encode("utf8"))
        except Exception as e:
            raise ParseDegradation(f"parser raised {type(e).__name__}: {e}") from e

        root_node = tree.root_node
        chunks = []
        for node in self._walk_tree(root_node):
            if node.type in self.definition_types:
                chunk = self._extract_definition(node, path, lines)
                if chunk is not None:
                    chunks.append(chunk)

        if chunks:
            if root_node.has_error:
                logger.debug(f"Parse errors in {path} ({self.language_name}), kept {len(chunks)} definitions")
            logger.debug(
                f"Extracted {len(chunks)} chunks from {path} "
                f"using tree-sitter ({self.language_name})"
            )
            return chunks

        if root_node.has_error:
            raise ParseDegradation("syntax errors and no recoverable definitions")

        logger.debug(f"No definitions found in {path}, using single chunk")
        return whole_file_chunk(path, lines)

    def _walk_tree(self, node: Node):
        """Yield nodes in pre-order (document order of their start)."""
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def _extract_definition(self, node: Node, path: str, lines: list[str]) -> Optional[Chunk]:
        """
        Turn a definition node into a chunk of whole source lines.

        Returns:
            Chunk, or None for variable declarators that do not hold a function
        """
        if node.type == "variable_declarator" and not self._holds_function(node):
            return None

        # tree-sitter rows are 0-indexed
        start_line = node.start_point[0] + 1
        end_line = node.end_point[0] + 1
        if node.end_point[1] == 0 and end_line > start_line:
            end_line -= 1
        end_line = min(end_line, len(lines))
        if start_line > end_line:
            return None

        return Chunk.from_lines(path, lines, start_line, end_line, self._determine_kind(node), self.name_extractor(node))

    def _determine_kind(self, node: Node) -> ChunkKind:
        """Determine the chunk kind based on node type."""
        if node.type == "type_spec":
            type_node = node.child_by_field_name("type")
            if type_node is not None and type_node.type == "interface_type":
                return ChunkKind.INTERFACE
        return self.KIND_MAPPING.get(node.type, ChunkKind.BLOCK)

    def _holds_function(self, node: Node) -> bool:
        """Check if a variable_declarator is initialised with a function."""
        value = node.child_by_field_name("value")
        if value is not None:
            return value.type in _FUNCTION_VALUE_TYPES
        return any(child.type in _FUNCTION_VALUE_TYPES for child in node.children)

    # ===== JavaScript/TypeScript-specific extractors =====

    def _extract_js_name(self, node: Node) -> Optional[str]:
        """
        Extract the name of a JS/TS function, class, interface, or type.

        Args:
            node: AST node representing the definition

        Returns:
            Name string or None
        """
        name_node = node.child_by_field_name("name")
        if name_node is not None:
            return name_node.text.decode("utf8")

        for child in node.children:
            if child.type in ("identifier", "property_identifier", "type_identifier"):
                return child.text.decode("utf8")
        return None

    # ===== Go-specific extractors =====

    def _extract_go_name(self, node: Node) -> Optional[str]:
        """
        Extract the name of a Go function, method, or type.

        Args:
            node: AST node representing the definition

        Returns:
            Name string or None
        """
        name_node = node.child_by_field_name("name")
        if name_node is not None:
            return name_node.text.decode("utf8")

        wanted = "field_identifier" if node.type == "method_declaration" else (
            "type_identifier" if node.type == "type_spec" else "identifier"
        )
        for child in node.children:
            if child.type == wanted:
                return child.text.decode("utf8")
        return None
