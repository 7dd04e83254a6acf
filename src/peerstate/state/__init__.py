"""Session state store — one record per session, partitioned by project.

Layout:
    ~/.peerstate/sessions/
    ├── home/                          # Sessions started in $HOME
    │   └── <session_id>.md
    └── <project>/                     # Namespace = basename of the working dir
        ├── <session_id>.md            # Written only by its owning session
        └── .tmp-<key hash>-*.md       # In-flight atomic writes (ignored by readers)

Records older than the retention window (48h) are reaped before peers are read.
"""
