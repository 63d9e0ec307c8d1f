# Stories package - domain logic
#
# Modules:
# - models: Story, Illustration and StoryVersion records
# - errors: Error taxonomy shared by components and backends
# - content: Legacy plain text <-> rich markup normalization
# - prompts: Illustration placeholder detection and rendering
# - illustrations: Illustration position tracking and upload sync
# - versions: Version history listing, saving and restore
# - feed: Locale-grouped incremental story feed
