"""
Placeholder rewriting

Callers write positional parameters as question marks. asyncpg expects
numbered ``$n`` markers, so every ``?`` outside a single-quoted literal is
rewritten in order.
"""


def replace_placeholders(sql: str) -> str:
    """
    Replace unquoted ``?`` characters with ``$1``, ``$2``, ...

    Args:
        sql: SQL text using ``?`` as positional placeholders

    Returns:
        SQL text using the driver's numbered placeholders

    Unbalanced quotes are not detected; everything after a dangling quote is
    treated as literal text.
    """
    inside_quote = False
    parameter_index = 1
    current_index = 0
    parts = []

    for i, char in enumerate(sql):
        if inside_quote:
            if char == "'":
                inside_quote = False
        elif char == '?':
            parts.append(sql[current_index:i])
            parts.append(f"${parameter_index}")
            parameter_index += 1
            current_index = i + 1
        elif char == "'":
            inside_quote = True

    parts.append(sql[current_index:])
    return ''.join(parts)


def count_placeholders(sql: str) -> int:
    """Number of ``?`` placeholders outside single-quoted literals"""
    inside_quote = False
    count = 0
    for char in sql:
        if char == "'":
            inside_quote = not inside_quote
        elif char == '?' and not inside_quote:
            count += 1
    return count
