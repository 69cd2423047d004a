"""
Utility functions module.

Time Semantics:
- All stored timestamps are timezone-aware UTC
- Day-of-week, hour and calendar-date decisions use the reporting timezone
  (fixed UTC+9 by default), never the host timezone
- Injected `now` values always win over the wall clock so runs are testable
"""
