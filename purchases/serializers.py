"""Plain-dict renderings of the purchase models for JSON responses."""


def user_to_dict(user):
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
    }


def lecture_to_dict(lecture):
    return {
        "id": lecture.id,
        "title": lecture.title,
        "position": lecture.position,
        "isPreviewFree": lecture.is_preview_free,
    }


def course_to_dict(course, expand=False):
    data = {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "price": str(course.price),
        "isActive": course.is_active,
    }
    if expand:
        data["creator"] = user_to_dict(course.creator)
        data["lectures"] = [lecture_to_dict(lecture) for lecture in course.lectures.all()]
        data["enrolledStudents"] = [student.id for student in course.enrolled_students.all()]
    else:
        data["creator"] = course.creator_id
        data["lectures"] = [lecture.id for lecture in course.lectures.all()]
    return data


def purchase_to_dict(purchase):
    return {
        "id": purchase.id,
        "course": course_to_dict(purchase.course),
        "user": purchase.user_id,
        "amount": str(purchase.amount),
        "status": purchase.status,
        "paymentId": purchase.payment_id,
        "createdAt": purchase.created_at.isoformat(),
    }
