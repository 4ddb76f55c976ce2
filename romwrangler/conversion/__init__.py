"""Disc-image conversion: sheet parsing, chdman invocation and batching.

Import the submodules directly (``romwrangler.conversion.chdman`` and so
on); the package itself stays import-light because the data model depends
on the sheet parser.
"""
