"""
database.py
last updated: 2026-10-19

Supabase connection. Table layout lives in sql/schema.sql.
"""

# external
from supabase import create_client, Client

# internal
from pulse.settings import SUPABASE_URL, SUPABASE_KEY


def connect_to_supabase(url: str = None, key: str = None) -> Client:
    """
    Connect to Supabase using the provided URL and API key.
    Falls back to SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY from the environment.
    """
    url = url or SUPABASE_URL
    key = key or SUPABASE_KEY
    if not url or not key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) must be set"
        )
    supabase: Client = create_client(url, key)
    return supabase


def fetch_all_rows(build_query, page_size=1000):
    """
    Page through a select query until a short page comes back.

    Args:
        build_query: callable returning a fresh filtered query builder
        page_size (int): rows per request (PostgREST caps responses at 1000)

    Returns:
        List of rows. Storage errors propagate to the caller.
    """
    all_rows = []
    page = 0

    while True:
        response = (
            build_query()
            .range(page * page_size, (page + 1) * page_size - 1)
            .execute()
        )
        rows = response.data or []
        all_rows.extend(rows)
        if len(rows) < page_size:
            break
        page += 1

    return all_rows
