"""
Supabase Client and Storage Service for Contact Files

Owns the shared Supabase client (also used for auth lookups) and handles
contact file uploads and signed download URLs. Files are stored privately
and accessed via signed URLs.
"""

import os
import uuid
from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions
from flask import current_app

# Supabase client singleton
_supabase_client: Client = None


def get_supabase_client() -> Client:
    """
    Get or create the Supabase client.
    Uses SUPABASE_URL and SUPABASE_KEY from the app config (or environment).
    """
    global _supabase_client

    if _supabase_client is None:
        supabase_url = current_app.config.get('SUPABASE_URL') or os.getenv('SUPABASE_URL')
        supabase_key = current_app.config.get('SUPABASE_KEY') or os.getenv('SUPABASE_KEY')

        if not supabase_url or not supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY environment variables are required. "
                "Get these from your Supabase project settings."
            )

        # The server never keeps a session of its own; every request brings its token
        _supabase_client = create_client(
            supabase_url,
            supabase_key,
            options=ClientOptions(persist_session=False, auto_refresh_token=False)
        )

    return _supabase_client


def _bucket() -> str:
    return current_app.config.get('CONTACT_FILES_BUCKET', 'contact-files')


def generate_storage_path(contact_id: int, original_filename: str) -> tuple[str, str]:
    """
    Generate a unique storage path for a contact file.

    Returns:
        tuple: (storage_path, unique_filename)
    """
    ext = ''
    if '.' in original_filename:
        ext = '.' + original_filename.rsplit('.', 1)[1].lower()

    unique_filename = f"{uuid.uuid4().hex}{ext}"

    # Organize by contact_id for easy management
    storage_path = f"contacts/{contact_id}/{unique_filename}"

    return storage_path, unique_filename


def upload_contact_file(contact_id: int, file_data: bytes, original_filename: str, content_type: str = None) -> dict:
    """
    Upload a contact file to the contact files bucket.

    Returns:
        dict with 'path', 'filename', 'size' keys on success

    Raises:
        Exception on upload failure
    """
    client = get_supabase_client()
    storage_path, unique_filename = generate_storage_path(contact_id, original_filename)

    file_options = {}
    if content_type:
        file_options['content-type'] = content_type

    client.storage.from_(_bucket()).upload(
        path=storage_path,
        file=file_data,
        file_options=file_options
    )

    return {
        'path': storage_path,
        'filename': unique_filename,
        'size': len(file_data)
    }


def get_contact_file_url(storage_path: str, expires_in: int = 3600) -> str:
    """Get a signed URL for a contact file (default expiry: 1 hour)."""
    client = get_supabase_client()

    response = client.storage.from_(_bucket()).create_signed_url(
        path=storage_path,
        expires_in=expires_in
    )

    return response['signedURL']


def delete_contact_file(storage_path: str) -> bool:
    """
    Delete a contact file from storage.

    Returns:
        True on success, False on failure
    """
    client = get_supabase_client()

    try:
        client.storage.from_(_bucket()).remove([storage_path])
        return True
    except Exception as e:
        current_app.logger.error(f"Failed to delete file {storage_path}: {e}")
        return False
