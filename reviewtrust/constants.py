# --- Table names ---
TBL_PROFILES = "profiles"
TBL_CATEGORIES = "categories"
TBL_SUBCATEGORIES = "subcategories"
TBL_BUSINESSES = "businesses"
TBL_BUSINESS_CATEGORIES = "business_categories"
TBL_BUSINESS_SUBCATEGORIES = "business_subcategories"
TBL_BUSINESS_IMAGES = "business_images"
TBL_BUSINESS_DOCUMENTS = "business_documents"
TBL_BUSINESS_VIEWS = "business_views"
TBL_REVIEWS = "reviews"
TBL_REVIEW_COMMENTS = "review_comments"
TBL_USER_LIKES = "user_likes"
TBL_USER_COMMENT_LIKES = "user_comment_likes"
TBL_BLOGS = "blogs"
TBL_FEATURED_SUBCATEGORIES = "featured_subcategories"
TBL_IMPORT_RUNS = "import_runs"

# --- Roles ---
ROLE_USER = "user"
ROLE_BUSINESS = "business"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_BUSINESS, ROLE_ADMIN)

# --- Blog moderation statuses ---
BLOG_DRAFTED = "drafted"
BLOG_PENDING = "pending"
BLOG_APPROVED = "approved"
BLOG_WITHDRAWN = "withdrawn"
BLOG_PUBLISHED = "published"
BLOG_UNPUBLISHED = "unpublished"
# Posts past moderation; only these may carry the featured/trending flags
BLOG_CURATABLE = (BLOG_PUBLISHED, BLOG_UNPUBLISHED)

# --- Blog moderation actions ---
ACT_SAVE_DRAFT = "save_draft"
ACT_SUBMIT = "submit"
ACT_APPROVE = "approve"
ACT_WITHDRAW = "withdraw"
ACT_PUBLISH = "publish"
ACT_UNPUBLISH = "unpublish"
ACT_REPUBLISH = "republish"
ACT_REJECT = "reject"

# Blog actions available from the admin transition endpoint
ADMIN_BLOG_ACTIONS = (ACT_APPROVE, ACT_WITHDRAW, ACT_PUBLISH, ACT_UNPUBLISH, ACT_REPUBLISH)

# --- Document statuses ---
DOC_PENDING = "pending"
DOC_APPROVED = "approved"
DOC_REJECTED = "rejected"

# --- Explore sort keys ---
SORT_RATING = "rating"
SORT_REVIEWS = "reviews"
SORT_RECENT = "recent"
SORT_KEYS = (SORT_RATING, SORT_REVIEWS, SORT_RECENT)

# --- Realtime change events ---
EVT_INSERT = "INSERT"
EVT_UPDATE = "UPDATE"
EVT_DELETE = "DELETE"
EVT_ANY = "*"

# --- Display fallbacks ---
ANONYMOUS_REVIEWER = "Anonymous User"
REPLY_AUTHOR_FALLBACK = "Business Owner"
BLOG_AUTHOR_FALLBACK = "ReviewTrust Team"
CATEGORY_FALLBACK = "Service"
PLACEHOLDER_IMAGE = "/placeholder-service-image.svg"
BLOG_PLACEHOLDER_IMAGE = "/placeholder.svg?key=blog_default"
CLOSED = "Closed"

DAYS_OF_WEEK = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

# Best-in-category listings
BEST_IN_MIN_REVIEWS = 3
BEST_IN_ADMIN_LIMIT = 20
BEST_IN_PUBLIC_LIMIT = 4

# --- CSV seed import columns ---
F_REVIEW_ID = "review_id"
F_USER_ID = "user_id"
F_USER_NAME = "user_name"
F_EMAIL = "email"
F_BUSINESS_ID = "business_id"
F_BUSINESS_NAME = "business_name"
F_RATING = "rating"
F_COMMENT = "comment"
F_CREATED_AT = "created_at"
F_SOURCE_PATH = "source_path"
F_TOTAL_ROWS = "total_rows"
F_LOADED_ROWS = "loaded_rows"
F_FILE_HASH = "file_hash"

COL_REVIEW_ID = "Review Id"
COL_REVIEWER_ID = "Reviewer Id"
COL_REVIEWER_NAME = "Reviewer Name"
COL_EMAIL = "Email Address"
COL_BUSINESS_ID = "Business Id"
COL_BUSINESS_NAME = "Business Name"
COL_REVIEW_RATING = "Review Rating"
COL_REVIEW_CONTENT = "Review Content"
COL_REVIEW_DATE = "Review Date"

# Mapping raw CSV header -> normalized internal field
RENAME_MAP = {
    COL_REVIEW_ID: F_REVIEW_ID,
    COL_REVIEWER_ID: F_USER_ID,
    COL_REVIEWER_NAME: F_USER_NAME,
    COL_EMAIL: F_EMAIL,
    COL_BUSINESS_ID: F_BUSINESS_ID,
    COL_BUSINESS_NAME: F_BUSINESS_NAME,
    COL_REVIEW_RATING: F_RATING,
    COL_REVIEW_CONTENT: F_COMMENT,
    COL_REVIEW_DATE: F_CREATED_AT,
}
