"""
TrailMemo Backend — Services Layer
====================================

Everything between the routes (HTTP) and the models (tables).

Inventory:
    Pure helpers
        geo.py             haversine_distance, bounding_box
        color.py           generate_user_color (MD5 → HSL → '#rrggbb')
    Stores (SQL only, flush never commit)
        memo_store.py      MemoStore + MemoFilters / MemoUpdate / MemoPage
        user_store.py      UserStore
    External collaborators
        firebase.py        firebase_admin App construction
        identity.py        IdentityVerifier / FirebaseIdentityVerifier
        object_store.py    ObjectStore / FirebaseObjectStore / LocalObjectStore
    Orchestration (what routes call)
        memo_service.py    MemoService
        account_service.py AccountService

Instances are created by trailmemo.context.build_context(); no module here
holds a singleton.
"""
