# Prompt context for a single workflow step
#
# +---------------------+     +-----------------------+
# |  Project context    |     |   Execution context   |
# |---------------------|     |-----------------------|
# | Tech stack          |     | Caller inputs         |
# | Test frameworks     |     | Completed step output |
# | Important files     |     | Active step turns     |
# +---------------------+     +-----------------------+
#            \                     /
#             \                   /
#              v                 v
#   +--------------------------------------+
#   |           Context compactor          |
#   |--------------------------------------|
#   | Prior step digest (bounded)          |
#   | Recent turns of the active step      |
#   | Summary turn once history is large   |
#   +--------------------------------------+
#                      |
#                      v
#   +--------------------------------------+
#   |           Prompt assembler           |
#   |--------------------------------------|
#   | Project block                        |
#   | Template with placeholders resolved  |
#   | Free input sections (first turn)     |
#   | Previous steps, history, new request |
#   +--------------------------------------+
