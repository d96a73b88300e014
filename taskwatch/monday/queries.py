from __future__ import annotations

ASSET_FIELDS = "id name url public_url file_extension"

ITEM_FIELDS = f"""
  id
  name
  state
  created_at
  updated_at
  group {{ id title }}
  column_values {{ id text value type column {{ id title }} }}
  assets {{ {ASSET_FIELDS} }}
"""

UPDATE_FIELDS = f"""
  updates(limit: 25) {{
    id
    text_body
    created_at
    assets {{ {ASSET_FIELDS} }}
  }}
"""


def _item_fields(with_updates: bool) -> str:
  return ITEM_FIELDS + (UPDATE_FIELDS if with_updates else "")


def items_page_query(*, filtered: bool = False, with_updates: bool = False) -> str:
  params = "$boardId: ID!, $limit: Int!"
  args = "limit: $limit"
  if filtered:
    params += ", $queryParams: ItemsQuery"
    args += ", query_params: $queryParams"
  return f"""
query ItemsPage({params}) {{
  boards(ids: [$boardId]) {{
    items_page({args}) {{
      cursor
      items {{ {_item_fields(with_updates)} }}
    }}
  }}
}}
"""


def next_items_page_query(*, with_updates: bool = False) -> str:
  return f"""
query NextItemsPage($cursor: String!, $limit: Int!) {{
  next_items_page(cursor: $cursor, limit: $limit) {{
    cursor
    items {{ {_item_fields(with_updates)} }}
  }}
}}
"""


def between_filter(date_column_id: str, start: str, end: str) -> dict:
  return {"rules": [{"column_id": date_column_id, "compare_value": [start, end], "operator": "between"}]}


GET_USERS = """
query Users($limit: Int!, $page: Int!) {
  users(limit: $limit, page: $page) { id name email }
}
"""

GET_WORKSPACES = """
query Workspaces {
  workspaces { id name kind }
}
"""

GET_BOARDS_IN_WORKSPACE = """
query BoardsInWorkspace($workspaceId: ID!, $limit: Int!, $page: Int!) {
  boards(workspace_ids: [$workspaceId], limit: $limit, page: $page, state: active) { id name }
}
"""

GET_BOARDS_WITH_COLUMNS = """
query BoardsWithColumns($boardIds: [ID!]) {
  boards(ids: $boardIds) {
    id
    name
    columns { id title type }
  }
}
"""
