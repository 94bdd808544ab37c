"""
Read-side select lists, joined with the display labels of each row's
immediate dependencies. Every read path (single, list, room details,
dashboard recent items) builds on these so the joined shape stays the same.
"""

ROOM_SELECT = """
    SELECT r.id, r.label, r.type, r.status, r.image_file_id
    FROM room r
"""

CATEGORY_SELECT = """
    SELECT cc.id, cc.label, cc.model_release_date, cc.description
    FROM computer_cat cc
"""

COMPUTER_SELECT = """
    SELECT c.id, c.label, c.install_date, c.isassignedto, c.belongstocategory,
           c.status, c.quantity,
           r.label AS room_name, cc.label AS category_name
    FROM computer c
    LEFT JOIN room r ON r.id = c.isassignedto
    LEFT JOIN computer_cat cc ON cc.id = c.belongstocategory
"""

SMART_BOARD_SELECT = """
    SELECT sb.id, sb.model_id, sb.isassignedto, sb.installed_date, sb.status,
           sb.image_file_id,
           r.label AS room_name
    FROM smart_board sb
    LEFT JOIN room r ON r.id = sb.isassignedto
"""

LAB_UTILITY_SELECT = """
    SELECT lu.id, lu.label, lu.description, lu.quantity, lu.isassignedto, lu.status,
           r.label AS room_name
    FROM lab_utility lu
    LEFT JOIN room r ON r.id = lu.isassignedto
"""

USER_SELECT = """
    SELECT u.id, u.username, u.name
    FROM users u
"""
