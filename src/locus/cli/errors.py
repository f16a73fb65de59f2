"""Locus rich error messages.

Every error names what went wrong and the command or setting that fixes it.

Usage:
    from locus.cli.errors import err_no_db
    console.print(err_no_db(str(db)))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".locus.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  locus init"
    )


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_embedding_model_mismatch(db_model: str, config_model: str) -> str:
    """Embedding model stored in the database differs from the configured one."""
    return (
        f"[red]Error:[/] Embedding model mismatch.\n"
        f"  Database uses:  {db_model}\n"
        f"  Config has:     {config_model}\n"
        "  Run:  locus kb reindex --clear  to re-embed with the new model,\n"
        "  or set embedding.model back in locus.yaml."
    )


def err_config(message: str) -> str:
    return f"[red]Error:[/] Invalid configuration: {message}"


def err_file_not_found(path: str) -> str:
    return (
        f"[yellow]Not found:[/] '{path}' is not in the knowledge base.\n"
        "  Run:  locus kb ls  to see stored files."
    )


def err_document_not_found(doc_id: str) -> str:
    return (
        f"[yellow]Not found:[/] no document with id '{doc_id}'.\n"
        "  Run:  locus docs ls  to see uploaded documents."
    )


def err_link_rejected(reason: str) -> str:
    return f"[red]Error:[/] Link rejected: {reason}"


def err_unsupported_type(path: str, mime_type: str) -> str:
    return (
        f"[red]Error:[/] Unsupported file type for '{path}': {mime_type}\n"
        "  Only text files (text/*, JSON, XML) can be uploaded."
    )


def err_bad_backup(path: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Cannot read backup '{path}': {reason}\n"
        "  Use a file written by:  locus backup export"
    )
