"""Turn/operation validation.

Every mutating run operation goes through the same pipeline before any state is
touched, so rejections look the same whether they come from HTTP or tests.
"""
