"""Session-level sync engine: live views, business rules and intents.

Import the view models from their modules (`shoplist.sync.view_model`,
`shoplist.sync.auth`); the repositories depend on `shoplist.sync.text`, so
this package keeps no eager imports.
"""
