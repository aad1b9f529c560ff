"""Daily buoy data cleaning and sea-surface temperature model comparison."""
