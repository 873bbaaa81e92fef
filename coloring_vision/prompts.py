"""Instruction texts sent to the vision and image-generation models."""

RETOUCH_PROMPT = (
    "Analyze this coloring book line art image. Identify issues like: broken lines, "
    "noise, uneven line thickness, or unclear edges. Suggest processing techniques "
    "from: denoise, sharpen, connect_lines, smooth_edges. "
    "Reply with only comma-separated keywords."
)

CONVERT_PROMPT = (
    "convert the image into a cartoon wireframe for kids' painting with white background"
)

IMAGE_GENERATION_PROMPT = (
    "Transform this image into a bold black-and-white cartoon coloring book page for "
    "kids. Remove the background completely (replace with pure white). Create thick, "
    "continuous black outlines around the main subject with clear edges. The result "
    "should look like a professional children's coloring book page with simple, bold "
    "lines on a white background - perfect for printing and coloring."
)
