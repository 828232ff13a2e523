"""Repository layer for the calling CRM core.

Session-level functions that compose inside one transaction:
- projects: get_by_external_id, get_by_id, upsert, stamp_contacted
- contacts: get_by_id, get_by_external_id, get_by_phone, get_by_email,
            get_by_ref, resolve, upsert
- project_contacts: get, upsert, list_for_project, list_for_contact,
                    list_call_candidates
- call_sessions: get_by_id, get_by_external_id, insert, append_outcome,
                 count_since, list_for_project
- terminal_sessions: get_by_id, get_by_external_id, insert, find_active, expire
"""
