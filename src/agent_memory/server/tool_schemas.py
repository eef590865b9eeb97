"""Agent Memory MCP Tool Schemas -- 9 tools for memory management.

Eight store tools plus ``check_index`` for index maintenance.
"""

_KEYWORDS = {
    "type": "array",
    "items": {"type": "string"},
    "maxItems": 10,
    "description": "Up to 10 keywords (trimmed, lower-cased, de-duplicated)",
}

TOOL_SCHEMAS = [
    {
        "name": "insert_memory",
        "description": "Insert a new memory. The content is written verbatim to a dated markdown file; the summary and keywords are indexed for full-text search.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content": {"type": "string", "minLength": 1, "description": "Full memory content (stored as a file)"},
                "summary": {"type": "string", "minLength": 1, "maxLength": 1000, "description": "Short summary used for search and the file name"},
                "keywords": _KEYWORDS,
            },
            "required": ["content", "summary"],
        },
    },
    {
        "name": "update_memory",
        "description": "Update an existing memory's content, summary and/or keywords. Supplying keywords replaces the whole set; an empty list clears it.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "integer", "minimum": 1, "description": "Memory ID"},
                "content": {"type": "string", "minLength": 1, "description": "New content (overwrites the file)"},
                "summary": {"type": "string", "minLength": 1, "maxLength": 1000},
                "keywords": _KEYWORDS,
            },
            "required": ["id"],
        },
    },
    {
        "name": "search_memories",
        "description": "Full-text search over summaries and keywords (BM25), re-ranked by overlap with the supplied keywords. Lower scores rank first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1, "description": "Search text; operators are matched literally"},
                "keywords": {**_KEYWORDS, "description": "Boost keywords: each one the memory carries lowers its score by lambda"},
                "limit": {"type": "integer", "minimum": 1, "maximum": 100, "default": 10},
                "summary_weight": {"type": "number", "exclusiveMinimum": 0, "default": 0.8, "description": "BM25 weight of the summary column"},
                "keyword_weight": {"type": "number", "exclusiveMinimum": 0, "default": 2.0, "description": "BM25 weight of the keywords column"},
                "lambda": {"type": "number", "minimum": 0, "default": 1.0, "description": "Score bonus per matched boost keyword"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "get_memory",
        "description": "Get a memory by ID, including its file contents (large files are replaced by a placeholder).",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "integer", "minimum": 1, "description": "Memory ID"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "delete_memory",
        "description": "Delete a memory and its keywords from the index. The content file is left on disk.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "integer", "minimum": 1, "description": "Memory ID"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "list_memories",
        "description": "List memories, most recently created or modified first, with pagination.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "minimum": 1, "maximum": 100, "default": 20},
                "offset": {"type": "integer", "minimum": 0, "default": 0},
            },
        },
    },
    {
        "name": "optimize_index",
        "description": "Merge the full-text index segments for faster queries.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "read_file",
        "description": "Read a content file by path. Only paths inside the memory content directory are allowed.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "minLength": 1, "description": "Path to the content file (also accepts 'filePath')"},
                "filePath": {"type": "string", "description": "Alias for file_path"},
            },
        },
    },
    {
        "name": "check_index",
        "description": "Check that every memory's full-text entry matches its summary and keywords. With repair=true, rebuild the entries that disagree.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "repair": {"type": "boolean", "default": False},
            },
        },
    },
]
